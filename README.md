# postkit

A library of building blocks for digital cinema (DCP) and IMF mastering tools.
It is used from Python code and has no command-line program of its own.

It needs nothing beyond the standard library. Some functions run external
tools, which must be on `PATH` when they are called:

- `ffmpeg` and `ffprobe` for loudness measurement, camera ingest and video decoding;
- `grk_compress` for JPEG 2000 encoding (also looked for in `$HOME/bin/grok/bin`);
- `mpv` for preview.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

| Module | Purpose |
| --- | --- |
| `postkit.hash` | SHA-1 / SHA-256 file digests as hex and base64 (`hash_file`, `HashAlgorithm`, `HashResult`) |
| `postkit.j2k` | JPEG 2000 main-header parsing (`parse_j2k_header`, `J2kHeader`, `J2kProfile`) and DCI bitrate analysis (`analyse_bitrate`, `dci_max_bitrate_mbps`) |
| `postkit.job_queue` | Thread-safe job queue with dependency tracking (`JobQueue`, `Job`, `JobType`, `JobState`) |
| `postkit.loudness` | EBU R128 loudness through ffmpeg's `loudnorm` filter (`measure_loudness`, `parse_loudnorm_output`, `LoudnessError`) |
| `postkit.mca` | SMPTE multi-channel audio labels, soundfields and their CPL XML (`detect_soundfield`, `generate_mca_xml`) |
| `postkit.metadata_edit` | Read and edit CPL/OPL metadata in place (`read_metadata`, `write_metadata`, `batch_update_field`, `list_fields`) |
| `postkit.grok` | Uncompressed 8/16-bit and packed 12-bit RGB TIFF loading (`load_tiff`) and `grk_compress` helpers |
| `postkit.ingest` | Camera format detection, media probing and ffmpeg transcoding (`detect_format`, `scan_media`, `ingest`) |
| `postkit.grok_encoder` | Multi-threaded J2K encode pipeline over a bounded queue (`encode_pipeline`, `encode_video_pipeline`, `BoundedQueue`) |
| `postkit.grok_subprocess` | Encode pipeline feeding a raw frame stream to parallel `grk_compress` processes (`encode_pipeline_subprocess`) |
| `postkit.mpv` | An mpv preview window controlled over its JSON IPC channel (`MpvPlayer`, `find_mxf_files`) |

Failures are reported with exceptions: `OSError` for file access,
`LoudnessError`, `TiffError`, `IngestError` and `MpvError` for their modules,
and `subprocess.CalledProcessError` when `compress_file_subprocess` fails. The
encode pipelines instead return a `PipelineResult` with `success`, `error` and
`frames_encoded`.

## Examples

Hash a file:

```python
from postkit.hash import HashAlgorithm, hash_file

result = hash_file("reel1.mxf", HashAlgorithm.SHA1)
print(result.hex, result.base64)
```

Inspect a JPEG 2000 frame and check a sequence against the DCI limit
(250 Mbps, or 500 Mbps above 2048 pixels wide):

```python
from pathlib import Path
from postkit.j2k import analyse_bitrate, parse_j2k_header

header = parse_j2k_header(Path("frame_00000000.j2c").read_bytes())
print(header.width, header.height, header.num_decomp_levels)

frames = sorted(Path("j2c").glob("*.j2c"))
report = analyse_bitrate(frames, 24.0, header.width)
print(report.avg_bitrate_mbps, report.dci_compliant)
```

Queue jobs with a dependency. Jobs are handed out in submission order once
every job they depend on has completed:

```python
from postkit.job_queue import Job, JobQueue, JobState, JobType

queue = JobQueue()
encode_id = queue.submit(Job(job_type=JobType.ENCODE, description="Encode reel 1"))
queue.submit(Job(job_type=JobType.CREATE, depends_on=[encode_id]))

job = queue.next_runnable()        # the encode job
queue.set_state(job.id, JobState.COMPLETED)
print(queue.next_runnable().id)    # now the create job
```

Measure loudness:

```python
from postkit.loudness import measure_loudness

result = measure_loudness("mix.wav")
print(result.integrated_lufs, result.range_lu, result.true_peak_dbtp)
```

Build the MCA sub-descriptors for a 5.1 mix:

```python
from postkit.mca import detect_soundfield, generate_mca_xml

print(generate_mca_xml(detect_soundfield(6)))
```

Change the title of several CPLs (raises `OSError` afterwards if any file
could not be updated):

```python
from postkit.metadata_edit import batch_update_field

batch_update_field(["CPL_a.xml", "CPL_b.xml"], "ContentTitle", "New Title")
```

Ingest a camera card to TIFF sequences, one directory per clip:

```python
from pathlib import Path
from postkit.ingest import IngestOptions, ingest

clips = ingest(IngestOptions(source=Path("/media/card"),
                             output_dir=Path("ingest"),
                             output_format="tiff"))
print([clip.reel_name for clip in clips])
```

Encode a video to `frame_XXXXXXXX.j2c` files. By default each frame is
compressed with `grk_compress`; pass `compress=` a function taking a frame and
a `CompressParams` and returning codestream bytes to use another encoder:

```python
import threading
from postkit.grok_encoder import CompressParams, encode_video_pipeline

result = encode_video_pipeline("input.mov", "j2c", CompressParams(), 240,
                               2048, 858, threading.Event(), print)
print(result.success, result.frames_encoded, result.error)
```

Preview a package in mpv:

```python
from postkit.mpv import MpvPlayer

with MpvPlayer("DCPWizard") as player:
    player.load_package_dir("/media/dcp/MyFeature")
    player.play_pause()
    print(player.get_position(), player.get_duration())
```

## What it does not do

- It contains no JPEG 2000 codec: encoding is done by `grk_compress`, or by
  a `compress` function you supply.
- It does not write MXF track files or assemble complete DCPs or IMPs; it
  works on the frames, audio labels and CPL files that go into them.
- It has no command-line program, server or user interface.