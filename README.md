# pobassets

Tools for reading the game's bundle archives. Files are found through the
bundle index, the `.datc64` data tables are decoded into rows, and item
artwork, UI art and fonts are written out as files that are ready for the
web. It can also produce a `gems.json` with gem colours, levels and vendor
rewards.

## Installation

```
pip install .
```

Fonts are converted with the external `woff2_compress` program, which has
to be on your `PATH` when the asset pipeline writes a `.ttf` font.
Images are decoded and encoded with Pillow. The assets are written as
`.webp`, so Pillow needs WebP support.

## Command line

The `pobassets` command first picks where the bundles come from:

- `--patch PATCH`: a patch version on the patch CDN
- `--web URL`: any base URL that serves the bundle files
- `--path PATH`: a local game installation

If none of these is given, the latest patch version is fetched and used
with the patch CDN.

Downloads can be cached in memory with `--in-memory-cache`, or on disk
with `--local-cache PATH`.

Then it runs one action:

```
# print the SHA-256 of a file inside the bundles
pobassets --path ./game sha Data/Words.datc64

# write a bundled file into the current directory under its base name
pobassets --path ./game extract Art/UIImages1.txt

# item, passive and UI images as .webp, plus fonts
pobassets --path ./game --local-cache ./cache assets -o ./out

# gems.json with gem data and vendor rewards from the wiki
pobassets --path ./game data -o ./out
```

`-o` defaults to `./out`. For `assets` that directory must already exist.
When an action fails, the command prints `Error: ...` to standard error and
exits with status 1.

## Library use

```python
from pobassets.fs import LocalBundleFs, CacheBundleFs, InMemoryCache
from pobassets.bundle import Bundle
from pobassets.tables import BaseItemTypes

fs = CacheBundleFs(LocalBundleFs("./game"), InMemoryCache())
index = Bundle(fs).index()

raw = index.read_by_name("Data/Words.datc64")  # bytes, or None if absent
bases = index.read(BaseItemTypes)               # a DatFile of rows, or None

for path in index.files():
    print(path)
```

- `pobassets.fs`: file sources (`LocalBundleFs`, `WebBundleFs`, with
  `WebBundleFs.cdn(version)`) and caches (`InMemoryCache`, `LocalCache`)
  combined through `CacheBundleFs`.
- `pobassets.bundle`: `Bundle`, `IndexBundle` and `decompress_file`.
- `pobassets.dat` and `pobassets.tables`: `DatFile`, `DatString` and the
  row types `BaseItemTypes`, `ItemVisualIdentity`, `UniqueStashLayout`,
  `Words` and `SkillGems`.
- `pobassets.hashing`: file lookups hash the lower-cased path
  (`HashStrategy`); `filepath_hash` gives the older FNV-1a path hash.
- `pobassets.pipeline.Pipeline`: set up with `select`, `rename`,
  `postprocess`, `font` and `progress`, then run with `execute()`, which
  returns the number of assets written. `pobassets.cli.configure_pipeline`
  applies the rules the command line uses.
- `pobassets.gems`: `generate(fs)` builds the gem list and
  `build_gems` joins already loaded tables with vendor rewards.

## Chunk decompression

Bundles are stored in chunks. The built-in codec,
`pobassets.ooz.decompress_chunk`, only handles chunks that are stored
uncompressed. It does not decode the Oodle compression used by real game
bundles, and such chunks fail with a `BundleError` ("failed to decompress
file: -1").

To read real bundles from Python, pass a decoder as `codec` to `Bundle`
or `Pipeline`. A decoder is any callable `codec(src: bytes, dst_size: int)
-> bytes` that returns exactly `dst_size` bytes. The command line and
`pobassets.gems.generate` always use the built-in codec, so on their own
they can only read bundles whose chunks are stored uncompressed.

## Tests

```
pip install .[test]
pytest
```