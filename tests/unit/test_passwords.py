from lamacare.models.user import User


def test_password_is_hashed_and_checked():
    user = User(email="a@x.com", role="owner")
    user.set_password("P@ssword1")
    assert user.password_hash != "P@ssword1"
    assert user.check_password("P@ssword1") is True
    assert user.check_password("p@ssword1") is False


def test_same_password_gets_distinct_hashes():
    first, second = User(), User()
    first.set_password("P@ssword1")
    second.set_password("P@ssword1")
    assert first.password_hash != second.password_hash
