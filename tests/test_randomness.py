import base64
import json
from unittest.mock import MagicMock

import pytest
import requests

from stream_giveaway.errors import ConfigurationError, RandomnessProviderError
from stream_giveaway.randomness import (
    RANDOM_ORG_INVOKE_URL,
    RANDOM_ORG_VERIFY_URL,
    RandomOrgProvider,
    SignedRandom,
    build_verification_url,
)

SIGNED_PAYLOAD = {
    "method": "generateSignedIntegers",
    "n": 1,
    "min": 0,
    "max": 99,
    "data": [42],
    "userData": "Friday",
    "serialNumber": 7,
}


def response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


def test_generate_posts_signed_integer_request(session):
    session.post.return_value = response(
        payload={"result": {"random": SIGNED_PAYLOAD, "signature": "c2ln"}}
    )
    provider = RandomOrgProvider("key-123", timeout=3, session=session)

    signed = provider.generate(100, "Friday")

    assert signed == SignedRandom(SIGNED_PAYLOAD, "c2ln")
    assert signed.value == 42
    args, kwargs = session.post.call_args
    assert args == (RANDOM_ORG_INVOKE_URL,)
    assert kwargs["timeout"] == 3
    body = kwargs["json"]
    assert body["method"] == "generateSignedIntegers"
    assert body["params"] == {
        "apiKey": "key-123",
        "n": 1,
        "min": 0,
        "max": 99,
        "replacement": True,
        "userData": "Friday",
    }


def test_generate_without_key_is_configuration_error(session):
    with pytest.raises(ConfigurationError):
        RandomOrgProvider(None, session=session).generate(10, "x")
    session.post.assert_not_called()


@pytest.mark.parametrize(
    "resp",
    [
        response(status=503),
        response(payload={"error": {"code": 402, "message": "quota exceeded"}}),
        response(payload={"result": {"random": SIGNED_PAYLOAD}}),
    ],
)
def test_generate_failures_raise_provider_error(session, resp):
    session.post.return_value = resp

    with pytest.raises(RandomnessProviderError):
        RandomOrgProvider("key", session=session).generate(10, "x")


def test_generate_timeout_raises_provider_error(session):
    session.post.side_effect = requests.Timeout("slow")

    with pytest.raises(RandomnessProviderError, match="request failed"):
        RandomOrgProvider("key", session=session).generate(10, "x")


def test_verify_checks_authentic_flag(session):
    provider = RandomOrgProvider("key", session=session)

    session.post.return_value = response(payload={"result": {"authentic": True}})
    assert provider.verify(SIGNED_PAYLOAD, "c2ln") is True
    args, kwargs = session.post.call_args
    assert args == (RANDOM_ORG_VERIFY_URL,)
    assert kwargs["json"]["method"] == "verify"
    assert kwargs["json"]["params"] == {"random": SIGNED_PAYLOAD, "signature": "c2ln"}

    session.post.return_value = response(payload={"result": {"authentic": False}})
    assert provider.verify(SIGNED_PAYLOAD, "c2ln") is False

    session.post.return_value = response(status=500)
    assert provider.verify(SIGNED_PAYLOAD, "c2ln") is False

    session.post.side_effect = requests.ConnectionError("down")
    assert provider.verify(SIGNED_PAYLOAD, "c2ln") is False


def test_verification_url_encodes_payload_and_signature():
    url = build_verification_url({"data": [1]}, "a+b/c=")

    assert url.startswith("https://api.random.org/signatures/form?format=json&random=")
    encoded = url.split("&random=")[1].split("&signature=")[0]
    assert json.loads(base64.b64decode(encoded)) == {"data": [1]}
    assert url.endswith("&signature=a%2Bb%2Fc%3D")


def test_signed_random_without_data_is_rejected():
    with pytest.raises(RandomnessProviderError):
        SignedRandom({"data": []}, "sig").value
