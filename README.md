# modvault

Storage and stashing building blocks for a Go module proxy.

A module version is kept as three pieces: its `.info` metadata, its `go.mod`
file and its source zip. `modvault` stores these pieces and fetches missing
versions from an upstream you supply. It saves each version once, even when
many requests ask for the same version at the same moment.

## Installation

```
pip install modvault
```

Redis locking uses `redis`, which is installed as a dependency.

## Storage backends

The interfaces live in `modvault.storage.base`: `Lister`, `Getter`,
`Checker`, `Saver`, `Deleter`, `Cataloger` and `Backend`, which combines the
first five. Both bundled backends implement `Backend` and `Cataloger`:

- `list(module)`
- `info(module, version)`
- `go_mod(module, version)`
- `zip(module, version)`
- `exists(module, version)`
- `save(module, version, mod, zip, info)`
- `delete(module, version)`
- `catalog(token, page_size)`

```python
import io

from modvault.storage.fs import FilesystemStorage

store = FilesystemStorage("/var/cache/modvault")
store.save("github.com/one/two", "v1.2.0", b"module github.com/one/two\n",
           io.BytesIO(b"zip bytes"), b'{"Version":"v1.2.0"}')

print(store.list("github.com/one/two"))              # ['v1.2.0']
print(store.exists("github.com/one/two", "v1.2.0"))  # True
with store.zip("github.com/one/two", "v1.2.0") as fh:
    data = fh.read()
```

- `modvault.storage.fs.FilesystemStorage(root_dir)` keeps each version under
  `<root>/<module>/<version>/`. The root directory must already exist.
  `list` reports only directory names that are valid semantic versions.
  `canonical_semver(version)` is the helper it uses for that check.
- `modvault.storage.mem.MemoryStorage` keeps everything in process memory.
  `modvault.storage.mem.new_storage()` returns one shared instance for the
  whole process.

`delete` and the getters raise a `NOT_FOUND` error for a version that is not
stored.

`catalog` pages through every stored module and version. It returns a list of
`modvault.paths.AllPathParams` and a token for the next page. The token is an
empty string when the page was not filled. A token that is not in
`module|version` form raises a `BAD_REQUEST` error.

`modvault.storage.base.Reader(lister, getter, checker)` gives a read-only view
over those three parts. `RevInfo` reads and writes the JSON body of a `.info`
file with `to_json()` and `RevInfo.from_json(data)`.

### Blob-store helpers

`modvault.storage.transfer` helps backends that keep each piece as a separate
blob:

- `versioned_name(module, version, ext)` gives the blob path,
  `<module>/@v/<version>.<ext>`.
- `upload(module, version, info, mod, zip, uploader, timeout)` sends the three
  pieces in parallel. The callable is `uploader(path, content_type, stream)`.
- `delete(module, version, deleter, timeout)` removes the three pieces in
  parallel. The callable is `deleter(path)`.

Any failures, and any piece not finished within `timeout` seconds, are
collected into a single `ProxyError`.

## Errors

Failures raise `modvault.errors.ProxyError`. Each error carries a `Kind`:
`BAD_REQUEST`, `NOT_FOUND`, `ALREADY_EXISTS` or `UNEXPECTED`.

- `kind_of(err)` returns the kind of an error, looking through wrapped causes.
- `is_kind(err, Kind.NOT_FOUND)` tells whether an error is of a given kind.

## Stashing

A `modvault.stash.Stasher` fetches a module version from an upstream
`Fetcher` and saves it to storage. It returns the resolved semantic version.
You implement `Fetcher.fetch(mod, ver)` to return a `Version`.

```python
from modvault.stash import new_stasher, with_pool, with_singleflight

stasher = new_stasher(fetcher, store, with_pool(4), with_singleflight)
semver = stasher.stash("github.com/one/two", "master")
```

If the resolved version differs from the requested one and is already stored,
it is not saved again. The wrappers are applied in the order given:

- `with_singleflight` merges concurrent requests for the same module and
  version into a single stash. Every waiting caller gets that stash's result.
- `with_pool(n)` runs at most `n` stash operations at a time. The resulting
  `PoolStasher` can be closed, or used as a context manager.
- `with_gcs_lock` treats an `ALREADY_EXISTS` failure as success and returns the
  requested version.
- `modvault.stash_redis.with_redis_lock(endpoint, checker)` connects to the
  Redis server at `host:port` and holds a lock per module version while
  stashing. Several proxy processes therefore do not fetch the same version
  twice. A version that `checker` already reports as stored is returned
  without stashing.

## Path helpers

`modvault.paths` has these helpers:

- `decode_path` decodes the safe `!`-escaped module path encoding.
- `get_module`, `get_version` and `get_all_params` read and decode the module
  and version from a mapping of route parameters.
- `matches_pattern` matches a module path against a `GOPRIVATE`-style glob
  prefix.

```python
from modvault.paths import decode_path, matches_pattern

decode_path("github.com/!azure/sdk")                      # 'github.com/Azure/sdk'
matches_pattern("*.example.com/*", "go.example.com/a/b")  # True
```

## What it does not do

`modvault` is a library only. It has no HTTP server and no command-line
program. It does not download modules from anywhere itself, because the
`Fetcher` is yours to provide. The bundled stores are the filesystem and
in-memory backends; there is no database or cloud object-store backend. The
blob-store helpers above let you write one.