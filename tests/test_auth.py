from itsdangerous import URLSafeTimedSerializer

from auth import _serializer, issue_token, read_token


def test_issued_token_reads_back_to_user() -> None:
    token = issue_token("user-u")

    assert read_token(token) == "user-u"


def test_tampered_token_is_rejected() -> None:
    token = issue_token("user-u")

    assert read_token(token + "x") is None
    assert read_token("not-a-token") is None


def test_token_signed_with_another_secret_is_rejected() -> None:
    forged = URLSafeTimedSerializer("some-other-secret", salt="user-token").dumps(
        {"u": "user-u"}
    )

    assert read_token(forged) is None


def test_expired_token_is_rejected() -> None:
    token = issue_token("user-u")

    assert read_token(token, max_age_hours=-1) is None


def test_token_without_user_is_rejected() -> None:
    assert read_token(_serializer().dumps({"x": "user-u"})) is None
    assert read_token(_serializer().dumps(["user-u"])) is None
