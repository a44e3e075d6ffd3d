from typing import cast

import pytest

import auth_session as m


class DummyProvider:
    """Duck-typed KeyProvider for tests."""

    def __init__(self, key=None, error: Exception | None = None):
        self._key = key
        self._error = error
        self.calls: list[str | None] = []

    def get_key_for_token(self, kid: str | None):
        self.calls.append(kid)
        if self._error is not None:
            raise self._error
        return self._key


@pytest.fixture
def codec() -> m.JWTCodec:
    return m.JWTCodec()


def test_verifier_resolves_key_by_kid(
    codec: m.JWTCodec, key_pair: m.KeyPair, other_key_pair: m.KeyPair
):
    provider = m.StaticKeyProvider.from_key_pairs([key_pair, other_key_pair])
    verifier = m.JWTVerifier(provider, codec)

    a = codec.create({"sub": "a"}, key_pair.private_key, 60, key_pair.key_id)
    b = codec.create({"sub": "b"}, other_key_pair.private_key, 60, other_key_pair.key_id)

    assert verifier.verify(a).subject == "a"
    assert verifier.verify(b).subject == "b"


def test_verifier_unknown_kid(codec: m.JWTCodec, key_pair: m.KeyPair):
    verifier = m.JWTVerifier(m.StaticKeyProvider.from_key_pairs([key_pair]), codec)
    token = codec.create({"sub": "u"}, key_pair.private_key, 60, "retired")

    with pytest.raises(m.InvalidSignatureError) as exc:
        verifier.verify(token)

    assert exc.value.context["key_id"] == "retired"


def test_verifier_uses_sole_key_without_kid(codec: m.JWTCodec, key_pair: m.KeyPair):
    verifier = m.JWTVerifier(m.StaticKeyProvider.from_key_pairs([key_pair]), codec)
    token = codec.create({"sub": "u"}, key_pair.private_key, 60)

    assert verifier.verify(token).subject == "u"


def test_verifier_without_kid_and_without_default(
    codec: m.JWTCodec, key_pair: m.KeyPair, other_key_pair: m.KeyPair
):
    provider = m.StaticKeyProvider.from_key_pairs([key_pair, other_key_pair])
    token = codec.create({"sub": "u"}, key_pair.private_key, 60)

    with pytest.raises(m.InvalidSignatureError):
        m.JWTVerifier(provider, codec).verify(token)


def test_verifier_default_kid(codec: m.JWTCodec, key_pair: m.KeyPair, other_key_pair: m.KeyPair):
    provider = m.StaticKeyProvider.from_key_pairs(
        [key_pair, other_key_pair], default_kid=other_key_pair.key_id
    )
    token = codec.create({"sub": "u"}, other_key_pair.private_key, 60)

    assert m.JWTVerifier(provider, codec).verify(token).subject == "u"


def test_verifier_malformed_token_skips_provider(key_pair: m.KeyPair):
    provider = DummyProvider(key_pair.public_key)
    verifier = m.JWTVerifier(cast(m.KeyProvider, provider))

    with pytest.raises(m.MalformedTokenError):
        verifier.verify("garbage")

    assert provider.calls == []


def test_verifier_normalizes_provider_failures(codec: m.JWTCodec, key_pair: m.KeyPair):
    provider = DummyProvider(error=RuntimeError("secret store down"))
    verifier = m.JWTVerifier(cast(m.KeyProvider, provider), codec)
    token = codec.create({"sub": "u"}, key_pair.private_key, 60, "kid123")

    with pytest.raises(m.InvalidSignatureError):
        verifier.verify(token)

    assert provider.calls == ["kid123"]


def test_static_provider_validation(key_pair: m.KeyPair):
    with pytest.raises(ValueError):
        m.StaticKeyProvider({})
    with pytest.raises(ValueError):
        m.StaticKeyProvider({"a": key_pair.public_key}, default_kid="b")
    with pytest.raises(ValueError):
        m.StaticKeyProvider.from_key_pairs([m.KeyPair(key_pair.private_key, key_pair.public_key)])
