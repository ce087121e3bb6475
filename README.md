# atticserver

Building blocks for the server side of a Nix binary cache, as a plain Python
library with no third-party dependencies.

## Modules

- `atticserver.manifest`: reading the flat `Key: value` manifest format used
  by `.narinfo` and `nix-cache-info` files. `parse(text)` returns an ordered
  `dict` of keys to raw string values and raises `ManifestError` when a line
  has no colon or a key appears twice. `parse_bool` accepts `1`/`0`,
  `parse_unsigned` a non-negative decimal integer, and `split_list` splits a
  space-delimited list (an empty value gives an empty list).
- `atticserver.manifest_writer`: writing the same format. `serialize(fields)`
  takes a mapping or an iterable of `(key, value)` pairs and writes one
  `Key: value` line per field. `format_value` writes booleans as `1`/`0` and
  enums by their value, and raises `ManifestError` for `None`, bytes,
  sequences and nested maps. `join_list` joins items with spaces.
- `atticserver.narinfo`: the `NarInfo` record and the `Compression` types
  (`none`, `xz`, `bzip2`, `br`, `zstd`). Hashes are `sha256:` typed hashes;
  they may be given in hex, base32 or base64 and are kept in base32 form.
- `atticserver.errors`: `ServerError` and `ErrorKind`. Each kind carries a
  name, a message template and an HTTP status. `ServerError.to_response()`
  returns an `ErrorResponse` (`code`, `error`, `message`, and `to_json()`)
  with internal details hidden from the client, and with missing caches,
  missing objects and access errors turned into `Unauthorized` when the
  client lacks discovery permission.
- `atticserver.storage`: references to stored files (`S3RemoteFile`,
  `LocalRemoteFile`, `HttpRemoteFile`), `remote_file_id`, the JSON encoding
  used for them in the database (`remote_file_to_json`,
  `remote_file_from_json`), and `LocalBackend`.
- `atticserver.models`: row models for caches, NARs, chunks, chunk references
  and objects (`CacheModel`, `NarModel`, `ChunkModel`, `ChunkRefModel`,
  `ObjectModel`) with the `NarState` and `ChunkState` enums.
- `atticserver.migrations_columns`: four migrations for a `sqlite3`
  connection that add columns to existing tables:
  `add_cache_retention_period`, `add_object_created_by`, `add_nar_num_chunks`
  and `add_nar_completeness_hint`.

## Installation

```
pip install atticserver
```

For running the tests:

```
pip install "atticserver[test]"
pytest
```

## NAR info

```python
from atticserver.narinfo import NarInfo, Compression

info = NarInfo.parse(text)
assert info.compression is Compression.XZ
print(info.store_dir())      # /nix/store
print(info.fingerprint())    # b"1;/nix/store/...;sha256:...;206104;/nix/store/..."
print(info.to_string())      # back to the manifest format
```

A `Deriver` of `unknown-deriver` is read as no deriver. `Compression.parse`
raises a `ServerError` of kind `INVALID_COMPRESSION_TYPE` for an unknown name.

`NarInfo.sign(signer)` calls `signer.sign(fingerprint)` with the fingerprint
bytes and stores the returned string as the signature, so any signing key
implementation with such a method can be used:

```python
class Signer:
    def sign(self, message: bytes) -> str:
        ...

info.sign(Signer())
```

## Local storage

```python
import io
from atticserver.storage import LocalBackend, remote_file_id, remote_file_to_json

storage = LocalBackend("/var/lib/cache/storage")
ref = storage.upload_file("abcdef", io.BytesIO(b"data"))
print(remote_file_id(ref))        # local:abcdef
print(remote_file_to_json(ref))   # {"Local":{"name":"abcdef"}}

with storage.download_file_db(ref, prefer_stream=True) as f:
    data = f.read()

storage.delete_file_db(ref)
```

Files are kept as `<root>/<c>/<cc>/<name>`, where `c` and `cc` are the first
one and two characters of the name. On start the backend creates the
directory, moves files of an older flat layout into that scheme when no
`VERSION` file says otherwise, and writes `VERSION` as `1`. References that
are not `LocalRemoteFile` are refused with a storage error.

## Row models

Each model has `from_row(row, prefix="")`, which reads the columns named
`prefix + field` from any mapping (such as a `sqlite3.Row`) and converts
them: timestamps to UTC `datetime`, JSON lists to lists of strings, stored
file references to `RemoteFile` values, states to their enums. A missing
column or a bad value raises a `ServerError` of kind `DATABASE_ERROR`.

`ObjectModel.to_nar_info(nar)` describes an object and its `NarModel` as a
`NarInfo` with the URL `nar/<store path hash>.nar`.

## What this package does not do

- It has no HTTP server and no command to start one.
- It does not create the database tables. The column migrations in
  `atticserver.migrations_columns` expect the `cache`, `nar` and `object`
  tables to exist already, and nothing records which migrations have run.
- It has no query layer over the database and no garbage collection of
  objects, NARs or chunks.
- It has no S3 backend; `S3RemoteFile` and `HttpRemoteFile` are references
  only.
- It does not generate or verify signatures itself.