from flask import jsonify


def respond(data=None, message: str = "success", status: int = 200):
    body = {"message": message, "status": status}
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def page_payload(key: str, rows, total: int, page: int, limit: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "amount": total,
        key: [row.to_dict() for row in rows],
    }
