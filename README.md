# chatlog

A library of helpers for handling chat log data on disk: parsing time
ranges, decoding obfuscated image files, decompressing message bodies,
keeping temporary copies of files that other programs hold open, watching
directories for changes and keeping a settings file.

## Installation

    pip install .

To run the tests:

    pip install ".[test]"
    pytest

## Modules

### `chatlog.timeparse`

Turns human-friendly strings into timezone-aware datetimes.

- `parse_time(text)` returns `(datetime, Granularity)`; `time_of(text)`
  returns only the datetime. Accepted forms include Unix timestamps in
  seconds, `20060102`, `2006-01-02`, `2006-01-02/15:04`, `20060102150405`,
  `200601021504`, RFC 3339 (`2020-01-01T12:00:00Z`, seconds optional),
  years (`2020`), months (`202001`, `2020-01`), quarters (`2020Q1`),
  relative times (`5h-ago`, `3d-ago`, `1w-ago`, `1m-ago`, `1y-ago`, or a
  duration such as `1h30m-ago`) and the words `now`, `today`, `yesterday`,
  `this-week`, `last-week`, `this-month`, `last-month`, `this-year`,
  `last-year` and `all`. Years must lie between 1970 and 9999.
- `time_range_of(text)` returns an inclusive `(start, end)`. It accepts
  `all`, `last-<n>d|w|m|y`, two time points joined by `~`, `,` or ` to `
  (swapped if given in reverse order), or a single time point, whose range
  follows from its granularity (a month gives the whole month, and so on).
- `perfect_time_format(start, end)` returns the shortest `strftime` format
  that tells times in the range apart.

Unsupported input raises `ValueError`.

    from chatlog.timeparse import time_range_of

    start, end = time_range_of("2020-01")
    # start: 2020-01-01 00:00:00, end: 2020-01-31 23:59:59.999999

### `chatlog.strutil`

`is_normal_string`, `is_numeric`, `must_any_to_int`,
`split_int64_to_two_int32` and `str_to_list` (split, strip, drop empty
items and duplicates while keeping order).

### `chatlog.osutil`

`find_files_with_patterns(directory, pattern, recursive)`,
`default_work_dir(account)`, `get_dir_size(directory)`,
`byte_count_si(size)` and `prepare_dir(path)`.

    from chatlog.osutil import byte_count_si

    byte_count_si(1500)  # "1.5 kB"

### `chatlog.dat2img`

`dat_to_image(data)` decodes a `.dat` image file and returns
`(image bytes, extension)`. Older files are XOR-obfuscated JPEG, PNG, GIF,
TIFF or BMP images; newer ("v4") files mix AES-ECB and XOR and are handled
by `dat_to_image_v4(data, aes_key)`. The XOR key for v4 files can be read
with `get_v4_xor_key()`, set with `set_v4_xor_key(key)`, or found from a
directory of `_t.dat` thumbnails with `scan_and_set_xor_key(dir_path)`.
`ImageFormat` describes a signature.

### `chatlog.compression`

`lz4_decompress(data)` for raw LZ4 blocks (output at most four times the
input size) and `zstd_decompress(data)` for Zstandard frames. Both raise
`ValueError` on bad input.

### `chatlog.filecopy`

`TempCopyManager(temp_dir=None, deletion_delay=30.0)` keeps temporary
copies of files. `get_temp_copy(path)` reuses the previous copy while the
original has not changed; superseded copies are deleted after the delay.
Mappings are saved to `file_mappings.json` in the temporary directory. The
manager is a context manager; `close()` stops its background threads.
The module-level `get_temp_copy` and `cleanup_temp_files` use a shared
manager.

### `chatlog.filegroup` and `chatlog.filemonitor`

A `FileGroup` is a set of files below a root directory whose names match a
regular expression, minus blacklisted path fragments. Callbacks added with
`add_callback` receive a `FileEvent` (with an `EventOp`) in their own
thread.

`FileMonitor` holds groups (`add_group`, `create_group`, `remove_group`,
`get_groups`, `get_group`), and after `start()` watches their directories
and forwards changes to them until `stop()`. `refresh_watches()` re-scans
the groups; `set_blacklist` keeps directories from being watched.

### `chatlog.defaults`

`set_default(obj)` fills zero-valued dataclass fields from defaults given
as strings in field metadata under the key `"default"` (changeable with
`set_default_tag`). Simple types are parsed from the text; dataclasses,
lists, dicts and optional values are decoded as JSON.

### `chatlog.config`

`Config(name, config_type="json", path="")` keeps a JSON, YAML or TOML
settings file, by default in `~/.<name>`. `load(target)` reads it into a
dataclass or dict (creating an empty file if none exists) and applies
declared defaults; `load_file(file, target)` reads a given file;
`set(key, value)` stores a dotted key and writes the file; `reset()` empties
it; `all_settings()` returns everything. Errors raise `ConfigError`.

### `chatlog.appver`

`read_app_info(file_path)` returns an `AppInfo`. On macOS the version and
copyright come from the application bundle's `Info.plist`; on other systems
only the path is filled in.

### `chatlog.version`

`get_more(mod)` returns a version line, or build details when `mod` is true.

## What this package does not do

It is a library only: there is no command-line program, no HTTP server and
no terminal interface. It does not read or decrypt chat databases, does not
find keys in running processes, and does not convert voice messages to
audio files.