from pathlib import PurePosixPath

import pytest

from atticserver.errors import ErrorKind, ServerError
from atticserver.manifest import ManifestError
from atticserver.narinfo import Compression, NarInfo

BASIC = """
StorePath: /nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10
URL: nar/0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9.nar.xz
Compression: xz
FileHash: sha256:0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9
FileSize: 41104
NarHash: sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci
NarSize: 206104
References: 563528481rvhc5kxwipjmg6rqrl95mdx-glibc-2.33-56 xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10
Deriver: vvb4wxmnjixmrkhmj2xb75z62hrr41i7-hello-2.10.drv
Sig: cache.nixos.org-1:lo9EfNIL4eGRuNh7DTbAAffWPpI2SlYC/8uP7JnhgmfRIUNGhSbFe8qEaKN0mFS02TuhPpXFPNtRkFcCp0hGAQ==
    """

UNKNOWN_DERIVER = """
StorePath: /nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10
URL: nar/0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9.nar.xz
Compression: xz
FileHash: sha256:0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9
FileSize: 41104
NarHash: sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci
NarSize: 206104
References: 563528481rvhc5kxwipjmg6rqrl95mdx-glibc-2.33-56 xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10
Deriver: unknown-deriver
    """

HEX_HASH = """
StorePath: /nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10
URL: nar/0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9.nar.xz
Compression: xz
FileHash: sha256:0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9
FileSize: 41104
NarHash: sha256:91e129ac1959d062ad093d2b1f8b65afae0f712056fe3eac78ec530ff6a1bb9a
NarSize: 206104
References: 563528481rvhc5kxwipjmg6rqrl95mdx-glibc-2.33-56 xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10
Deriver: vvb4wxmnjixmrkhmj2xb75z62hrr41i7-hello-2.10.drv
Sig: cache.nixos.org-1:lo9EfNIL4eGRuNh7DTbAAffWPpI2SlYC/8uP7JnhgmfRIUNGhSbFe8qEaKN0mFS02TuhPpXFPNtRkFcCp0hGAQ==
    """

CORRECT_FINGERPRINT = (
    b"1;/nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10;"
    b"sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci;206104;"
    b"/nix/store/563528481rvhc5kxwipjmg6rqrl95mdx-glibc-2.33-56,"
    b"/nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10"
)


def _verify(narinfo):
    assert narinfo.store_path == PurePosixPath(
        "/nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10"
    )
    assert narinfo.store_dir() == PurePosixPath("/nix/store")
    assert narinfo.url == "nar/0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9.nar.xz"
    assert narinfo.compression is Compression.XZ
    assert narinfo.file_hash == "sha256:0nqgf15qfiacfxrgm2wkw0gwwncjqqzzalj8rs14w9srkydkjsk9"
    assert narinfo.file_size == 41104
    assert narinfo.nar_hash == "sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci"
    assert narinfo.nar_size == 206104
    assert narinfo.references == [
        "563528481rvhc5kxwipjmg6rqrl95mdx-glibc-2.33-56",
        "xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10",
    ]
    assert narinfo.deriver == "vvb4wxmnjixmrkhmj2xb75z62hrr41i7-hello-2.10.drv"
    assert narinfo.signature == (
        "cache.nixos.org-1:lo9EfNIL4eGRuNh7DTbAAffWPpI2SlYC/8uP7JnhgmfRIUNGhSbFe8qEaKN0mFS02TuhPpXFPNtRkFcCp0hGAQ=="
    )


def test_basic():
    narinfo = NarInfo.parse(BASIC)
    _verify(narinfo)

    round_trip = narinfo.to_string()
    reparse = NarInfo.parse(round_trip)
    _verify(reparse)


def test_deriver():
    narinfo = NarInfo.parse(UNKNOWN_DERIVER)
    assert narinfo.deriver is None
    assert "Deriver" not in narinfo.to_string()


def test_fingerprint():
    narinfo = NarInfo.parse(HEX_HASH)
    assert narinfo.fingerprint() == CORRECT_FINGERPRINT


def test_hex_hash_is_stored_as_base32():
    narinfo = NarInfo.parse(HEX_HASH)
    assert narinfo.nar_hash == "sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci"


def test_construct_from_hex_hash():
    narinfo = NarInfo(
        store_path="/nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10",
        url="nar/xcp9cav49dmsjbwdjlmkjxj10gkpx553.nar",
        compression="xz",
        nar_hash="sha256:91e129ac1959d062ad093d2b1f8b65afae0f712056fe3eac78ec530ff6a1bb9a",
        nar_size=206104,
    )
    assert narinfo.nar_hash == "sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci"
    assert narinfo.compression is Compression.XZ


def test_to_string_skips_missing_fields():
    narinfo = NarInfo(
        store_path=PurePosixPath("/nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10"),
        url="nar/xcp9cav49dmsjbwdjlmkjxj10gkpx553.nar",
        compression=Compression.NONE,
        nar_hash="sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci",
        nar_size=206104,
        references=["563528481rvhc5kxwipjmg6rqrl95mdx-glibc-2.33-56"],
    )
    assert narinfo.to_string() == (
        "StorePath: /nix/store/xcp9cav49dmsjbwdjlmkjxj10gkpx553-hello-2.10\n"
        "URL: nar/xcp9cav49dmsjbwdjlmkjxj10gkpx553.nar\n"
        "Compression: none\n"
        "NarHash: sha256:16mvl7v0ylzcg2n3xzjn41qhzbmgcn5iyarx16nn5l2r36n2kqci\n"
        "NarSize: 206104\n"
        "References: 563528481rvhc5kxwipjmg6rqrl95mdx-glibc-2.33-56\n"
    )


class _RecordingSigner:
    def __init__(self):
        self.messages = []

    def sign(self, message):
        self.messages.append(message)
        return "test-1:signature"


def test_sign_signs_fingerprint():
    narinfo = NarInfo.parse(HEX_HASH)
    signer = _RecordingSigner()
    narinfo.sign(signer)
    assert signer.messages == [CORRECT_FINGERPRINT]
    assert narinfo.signature == "test-1:signature"
    assert "Sig: test-1:signature\n" in narinfo.to_string()


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("none", Compression.NONE),
        ("xz", Compression.XZ),
        ("bzip2", Compression.BZIP2),
        ("br", Compression.BROTLI),
        ("zstd", Compression.ZSTD),
    ],
)
def test_compression_parse(name, expected):
    assert Compression.parse(name) is expected
    assert str(expected) == name


def test_compression_parse_invalid():
    with pytest.raises(ServerError) as info:
        Compression.parse("lzma")
    assert info.value.kind is ErrorKind.INVALID_COMPRESSION_TYPE
    assert str(info.value) == 'Invalid compression type "lzma".'
    assert info.value.to_response().code == 400


def test_parse_unknown_compression_is_manifest_error():
    with pytest.raises(ManifestError):
        NarInfo.parse(BASIC.replace("Compression: xz", "Compression: lzma"))


def test_parse_missing_field():
    text = BASIC.replace(
        "NarSize: 206104\n", ""
    )
    with pytest.raises(ManifestError) as info:
        NarInfo.parse(text)
    assert info.value.reason == "missing field `NarSize`"


def test_parse_bad_hash():
    with pytest.raises(ManifestError):
        NarInfo.parse(BASIC.replace("NarHash: sha256:", "NarHash: md5:"))


def test_parse_optional_system_and_ca():
    text = BASIC + "System: x86_64-linux\nCA: fixed:r:sha256:abc\n"
    narinfo = NarInfo.parse(text)
    assert narinfo.system == "x86_64-linux"
    assert narinfo.ca == "fixed:r:sha256:abc"
    assert NarInfo.parse(narinfo.to_string()).ca == "fixed:r:sha256:abc"