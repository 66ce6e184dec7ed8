import base64
import json

import pytest

from webjose.errors import JoseError, NotSupportedError, UnprotectedNonceError
from webjose.header import RawHeader
from webjose.jws import (
    JSONWebSignature,
    Signature,
    _RawSignatureInfo,
    parse_detached,
    parse_signed,
    parse_signed_compact,
    parse_signed_json,
)

XYZ = ["XYZ"]

RS256_MSG = (
    "eyJhbGciOiJSUzI1NiJ9.TG9yZW0gaXBzdW0gZG9sb3Igc2l0IGFtZXQ.YHX849fvekz6wJGeyqnQhFqyHFcUXNJKj3o2w3ddR46YLlsCopUJrlifRU_ZuTWzpYxt5oC--T2eoqMhlCvltSWrE5_1_EumqiMfAYsZULx9E6Jns7q3w7mttonYFSIh7aR3-yg2HMMfTCgoAY1y_AZ4VjXwHDcZ5gu1oZDYgvZF4uXtCmwT6e5YtR1m8abiWPF8BgoTG_BD3KV6ClLj_QQiNFdfdxAMDw7vKVOKG1T7BFtz6cDs2Q3ILS4To5E2IjcVSSYS8mi77EitCrWmrqbK_G3WCdKeUFGnMnyuKXaCDy_7FLpAZ6Z5RomRr5iskXeJZdZqIKcJV8zl4fpsPA"
)
PS256_MSG = (
    "eyJhbGciOiJQUzI1NiJ9.TG9yZW0gaXBzdW0gZG9sb3Igc2l0IGFtZXQ.UTtxjsv_6x4CdlAmZfAW6Lun3byMjJbcwRp_OlPH2W4MZaZar7aql052mIB_ddK45O9VUz2aphYVRvKPZY8WHmvlTUU30bk0z_cDJRYB9eIJVMOiRCYj0oNkz1iEZqsP0YgngxwuUDv4Q4A6aJ0Bo5E_rZo3AnrVHMHUjPp_ZRRSBFs30tQma1qQ0ApK4Gxk0XYCYAcxIv99e78vldVRaGzjEZmQeAVZx4tGcqZP20vG1L84nlhSGnOuZ0FhR8UjRFLXuob6M7EqtMRoqPgRYw47EI3fYBdeSivAg98E5S8R7R1NJc7ef-l03RvfUSY0S3_zBq_4PlHK6A-2kHb__w"
)
ES256_MSG = (
    "eyJhbGciOiJFUzI1NiJ9.TG9yZW0gaXBzdW0gZG9sb3Igc2l0IGFtZXQ.MEWJVlvGRQyzMEGOYm4rwuiwxrX-6LjnlbaRDAuhwmnBm2Gtn7pRpGXRTMFZUXsSGDz2L1p-Hz1qn8j9bFIBtQ"
)
ES512_SIG = (
    "AeYNFC1rwIgQv-5fwd8iRyYzvTaSCYTEICepgu9gRId-IW99kbSVY7yH0MvrQnqI-a0L8zwKWDR35fW5dukPAYRkADp3Y1lzqdShFcEFziUVGo46vqbiSajmKFrjBktJcCsfjKSaLHwxErF-T10YYPCQFHWb2nXJOOI3CZfACYqgO84g"
)
ES512_MSG = "eyJhbGciOiJFUzUxMiJ9.TG9yZW0gaXBzdW0gZG9sb3Igc2l0IGFtZXQ." + ES512_SIG


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def test_embedded_hmac_key_rejected():
    msg = '{"payload":"TG9yZW0gaXBzdW0gZG9sb3Igc2l0IGFtZXQ","protected":"eyJhbGciOiJIUzI1NiIsICJqd2siOnsia3R5Ijoib2N0IiwgImsiOiJNVEV4In19","signature":"lvo41ZZsuHwQvSh0uJtEXRR3vmuBJ7in6qMoD7p9jyo"}'
    with pytest.raises(JoseError, match="invalid embedded jwk"):
        parse_signed(msg, ["HS256"])


def test_compact_parse_valid():
    obj = parse_signed("eyJhbGciOiJYWVoifQ.cGF5bG9hZA.c2lnbmF0dXJl", XYZ)
    assert obj.payload == b"payload"
    assert obj.signatures[0].signature == b"signature"
    assert obj.signatures[0].header.algorithm == "XYZ"


def test_compact_parse_detached_missing_payload():
    obj = parse_signed("eyJhbGciOiJYWVoifQ..c2lnbmF0dXJl", XYZ)
    assert obj.payload == b""
    assert obj.signatures[0].signature == b"signature"


@pytest.mark.parametrize(
    "msg",
    [
        "eyJhbGciOiJYWVoifQ.cGF5bG9hZA",
        "eyJhbGciOiJYWVoifQ.cGF5bG9hZA.////",
        "eyJhbGciOiJYWVoifQ.////.c2lnbmF0dXJl",
        "////.eyJhbGciOiJYWVoifQ.c2lnbmF0dXJl",
        "cGF5bG9hZA.cGF5bG9hZA.c2lnbmF0dXJl",
    ],
)
def test_compact_parse_failures(msg):
    with pytest.raises(JoseError):
        parse_signed(msg, XYZ)


def test_full_parse_multiple_signatures():
    msg = """{
      "header":{"alg":"XYZ"},
      "payload":"CUJD",
      "signatures":[
        {"protected":"eyJhbGciOiJBQkMifQo","header":{"kid":"XYZ"},"signature":"CUJD"},
        {"protected":"eyJhbGciOiJBQkMifQo","signature":"CUJD"}
      ]}"""
    obj = parse_signed(msg, ["ABC"])
    assert len(obj.signatures) == 2
    assert [s.header.algorithm for s in obj.signatures] == ["ABC", "ABC"]
    assert obj.signatures[0].raw_header == {"kid": "XYZ"}
    assert obj.signatures[0].merged_headers()["kid"] == "XYZ"


@pytest.mark.parametrize(
    "msg",
    [
        "{}",
        "{XX",
        '{"payload":"CUJD","signatures":[{"protected":"CUJD","header":{"kid":"XYZ"},"signature":"CUJD"}]}',
        '{"payload":"CUJD","protected":"CUJD","header":{"kid":"XYZ"},"signature":"CUJD"}',
        '{"payload":"CUJD","signatures":[{"protected":"###","header":{"kid":"XYZ"},"signature":"CUJD"}]}',
        '{"payload":"###","signatures":[{"protected":"CUJD","header":{"kid":"XYZ"},"signature":"CUJD"}]}',
        '{"payload":"CUJD","signatures":[{"protected":"e30","header":{"kid":"XYZ"},"signature":"###"}]}',
    ],
)
def test_full_parse_failures(msg):
    with pytest.raises(JoseError):
        parse_signed(msg, XYZ)


def test_reject_unprotected_nonce_flattened():
    msg = """{
        "header": { "nonce": "should-cause-an-error" },
        "payload": "does-not-matter",
        "signature": "does-not-matter"
    }"""
    with pytest.raises(UnprotectedNonceError):
        parse_signed(msg, XYZ)


def test_reject_unprotected_nonce_full():
    msg = """{
        "payload": "does-not-matter",
        "signatures": [{
            "header": { "nonce": "should-cause-an-error" },
            "signature": "does-not-matter"
        }]
    }"""
    with pytest.raises(UnprotectedNonceError):
        parse_signed(msg, XYZ)


def test_flattened_with_included_unprotected_key():
    msg = """{
        "header": {
            "alg": "RS256",
            "jwk": {
                "e": "AQAB",
                "kty": "RSA",
                "n": "tSwgy3ORGvc7YJI9B2qqkelZRUC6F1S5NwXFvM4w5-M0TsxbFsH5UH6adigV0jzsDJ5imAechcSoOhAh9POceCbPN1sTNwLpNbOLiQQ7RD5mY_pSUHWXNmS9R4NZ3t2fQAzPeW7jOfF0LKuJRGkekx6tXP1uSnNibgpJULNc4208dgBaCHo3mvaE2HV2GmVl1yxwWX5QZZkGQGjNDZYnjFfa2DKVvFs0QbAk21ROm594kAxlRlMMrvqlf24Eq4ERO0ptzpZgm_3j_e4hGRD39gJS7kAzK-j2cacFQ5Qi2Y6wZI2p-FCq_wiYsfEAIkATPBiLKl_6d_Jfcvs_impcXQ"
            }
        },
        "payload": "Zm9vCg",
        "signature": "hRt2eYqBd_MyMRNIh8PEIACoFtmBi7BHTLBaAhpSU6zyDAFdEBaX7us4VB9Vo1afOL03Q8iuoRA0AT4akdV_mQTAQ_jhTcVOAeXPr0tB8b8Q11UPQ0tXJYmU4spAW2SapJIvO50ntUaqU05kZd0qw8-noH1Lja-aNnU-tQII4iYVvlTiRJ5g8_CADsvJqOk6FcHuo2mG643TRnhkAxUtazvHyIHeXMxydMMSrpwUwzMtln4ZJYBNx4QGEq6OhpAD_VSp-w8Lq5HOwGQoNs0bPxH1SGrArt67LFQBfjlVr94E1sn26p4vigXm83nJdNhWAMHHE9iV67xN-r29LT-FjA"
    }"""
    obj = parse_signed(msg, ["RS256"])
    assert len(obj.signatures) == 1
    jwk = obj.signatures[0].header.json_web_key
    assert jwk is not None
    assert jwk.is_public()
    assert obj.payload == b"foo\n"


def test_flattened_with_private_protected_parameter():
    protected = _b64(b'{"nonce":"8HIepUNFZUa-exKTrXVf4g"}')
    msg = json.dumps(
        {"header": {"alg": "RS256"}, "protected": protected, "payload": _b64(b"x"), "signature": "c2ln"}
    )
    obj = parse_signed(msg, ["RS256"])
    sig = obj.signatures[0]
    assert sig.protected.nonce == "8HIepUNFZUa-exKTrXVf4g"
    assert sig.header.algorithm == "RS256"
    assert obj.compute_auth_data(obj.payload, sig) == (protected + "." + _b64(b"x")).encode()


@pytest.mark.parametrize("msg", [RS256_MSG, PS256_MSG, ES256_MSG, ES512_MSG])
def test_sample_messages_parse(msg):
    obj = parse_signed(msg, ["RS256", "RS384", "RS512", "PS256", "ES256", "ES384", "ES512"])
    assert obj.payload == b"Lorem ipsum dolor sit amet"
    assert obj.signatures[0].header.algorithm == json.loads(
        base64.urlsafe_b64decode(msg.split(".")[0] + "==")
    )["alg"]


def test_unexpected_algorithm_rejected():
    with pytest.raises(JoseError, match="unexpected signature algorithm"):
        parse_signed(RS256_MSG, ["ES256"])


def test_no_algorithms_rejected():
    with pytest.raises(JoseError, match="no signature algorithms"):
        parse_signed(RS256_MSG, [])


def test_header_fields_compact():
    obj = parse_signed(ES512_MSG, ["ES512"])
    sig = obj.signatures[0]
    assert sig.header.algorithm == "ES512"
    assert sig.protected.algorithm == "ES512"
    assert sig.unprotected.algorithm == ""


def test_header_fields_full():
    msg = (
        '{"payload":"TG9yZW0gaXBzdW0gZG9sb3Igc2l0IGFtZXQ","protected":"eyJhbGciOiJFUzUxMiJ9",'
        '"header":{"custom":"test"},"signature":"' + ES512_SIG + '"}'
    )
    sig = parse_signed(msg, ["ES512"]).signatures[0]
    assert sig.header.algorithm == "ES512"
    assert sig.protected.algorithm == "ES512"
    assert sig.unprotected.algorithm == ""
    assert sig.unprotected.extra_headers["custom"] == "test"


def test_missing_payload():
    with pytest.raises(JoseError, match="missing payload"):
        parse_signed_json('{"signature":"c2ln"}', ["RS256"])


def test_null_header_value():
    msg = """{
   "payload":
    "eyJpc3MiOiJqb2UiLA0KICJleHAiOjEzMDA4MTkzODAsDQogImh0dHA6Ly9leGF
     tcGxlLmNvbS9pc19yb290Ijp0cnVlfQ",
   "protected":"eyJhbGciOiJFUzI1NiIsIm5vbmNlIjpudWxsfQ",
   "header":
    {"kid":"e9bc097a-ce51-4036-9562-d2ade882db0d"},
   "signature":
    "DtEhU3ljbEg8L38VWAfUAqOyKAM6-Xx-F4GawxaepmXFCgfTjDxw5djxLa8IS
     lSApmWQxfKTUJqPP3-Kg6NU1Q"
  }"""
    sig = parse_signed(msg, ["ES256"]).signatures[0]
    assert sig.header.key_id == "e9bc097a-ce51-4036-9562-d2ade882db0d"
    assert sig.header.nonce == ""


def test_detached_compact_serialization():
    msg = "eyJhbGciOiJSUzI1NiJ9.JC4wMg.W5tc_EUhxexcvLYEEOckyyvdb__M5DQIVpg6Nmk1XGM"
    expected = "eyJhbGciOiJSUzI1NiJ9..W5tc_EUhxexcvLYEEOckyyvdb__M5DQIVpg6Nmk1XGM"
    obj = parse_signed(msg, ["RS256"])
    detached = obj.detached_compact_serialize()
    assert detached == expected
    again = parse_detached(detached, b"$.02", ["RS256"])
    assert again.compact_serialize() == msg


def test_parse_detached_matches_attached():
    obj = parse_signed(RS256_MSG, ["RS256"])
    detached = parse_detached(obj.detached_compact_serialize(), obj.payload, ["RS256"])
    assert detached.payload == obj.payload
    assert detached.signatures[0].signature == obj.signatures[0].signature


def test_parse_detached_rejects_attached_payload():
    with pytest.raises(JoseError, match="not detached"):
        parse_detached(RS256_MSG, b"x", ["RS256"])


def test_parse_detached_rejects_missing_payload():
    with pytest.raises(JoseError, match="nil payload"):
        parse_detached("eyJhbGciOiJSUzI1NiJ9..c2ln", None, ["RS256"])


def test_compute_auth_data_b64():
    jws = JSONWebSignature()
    with pytest.raises(JoseError):
        jws.compute_auth_data(
            b"\x01", Signature(original=_RawSignatureInfo(protected=b"{!invalid-json}"))
        )

    payload = b"\x01"
    encoded = _b64(payload)
    true_header = b'{"alg":"RSA-OAEP","enc":"A256GCM","b64":true}'
    false_header = b'{"alg":"RSA-OAEP","enc":"A256GCM","b64":false}'

    data = jws.compute_auth_data(payload, Signature(original=_RawSignatureInfo(protected=true_header)))
    assert len(data) == len(_b64(true_header)) + len(encoded) + 1
    assert data.endswith(b"." + encoded.encode())

    data = jws.compute_auth_data(payload, Signature(original=_RawSignatureInfo(protected=false_header)))
    assert len(data) == len(_b64(false_header)) + len(payload) + 1
    assert data.endswith(b"." + payload)


def test_compute_auth_data_from_raw_protected():
    sig = Signature(raw_protected=RawHeader({"alg": "XYZ"}))
    data = JSONWebSignature().compute_auth_data(b"payload", sig)
    assert data == b"eyJhbGciOiJYWVoifQ.cGF5bG9hZA"


def test_merged_headers_protected_takes_precedence():
    sig = Signature(
        raw_protected=RawHeader({"alg": "A"}),
        raw_header=RawHeader({"alg": "B", "kid": "k1"}),
    )
    assert sig.merged_headers() == {"alg": "A", "kid": "k1"}


def test_full_serialize_flattened_value():
    obj = parse_signed_compact("eyJhbGciOiJYWVoifQ.cGF5bG9hZA.c2lnbmF0dXJl", XYZ)
    assert obj.full_serialize() == (
        '{"payload":"cGF5bG9hZA","protected":"eyJhbGciOiJYWVoifQ","signature":"c2lnbmF0dXJl"}'
    )


def test_full_serialize_round_trip():
    obj = parse_signed(ES512_MSG, ["ES512"])
    again = parse_signed(obj.full_serialize(), ["ES512"])
    assert again.payload == obj.payload
    assert again.signatures[0].signature == obj.signatures[0].signature
    assert again.compact_serialize() == ES512_MSG


def test_full_serialize_multiple_signatures():
    msg = json.dumps(
        {
            "payload": "CUJD",
            "signatures": [
                {"protected": "eyJhbGciOiJYWVoifQ", "header": {"kid": "a"}, "signature": "c2ln"},
                {"protected": "eyJhbGciOiJYWVoifQ", "signature": "c2ln"},
            ],
        }
    )
    obj = parse_signed(msg, XYZ)
    out = json.loads(obj.full_serialize())
    assert out["payload"] == "CUJD"
    assert len(out["signatures"]) == 2
    assert out["signatures"][0]["header"] == {"kid": "a"}
    assert out["signatures"][1] == {"protected": "eyJhbGciOiJYWVoifQ", "signature": "c2ln"}


def test_compact_serialize_rejects_unprotected_header():
    msg = json.dumps(
        {"protected": "eyJhbGciOiJYWVoifQ", "header": {"kid": "a"}, "payload": "CUJD", "signature": "c2ln"}
    )
    obj = parse_signed(msg, XYZ)
    with pytest.raises(NotSupportedError):
        obj.compact_serialize()


def test_compact_serialize_rejects_missing_protected():
    msg = json.dumps({"header": {"alg": "XYZ"}, "payload": "CUJD", "signature": "c2ln"})
    obj = parse_signed(msg, XYZ)
    with pytest.raises(NotSupportedError):
        obj.detached_compact_serialize()