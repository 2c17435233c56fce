import asyncio
import os

import click

from .addressing import ContentAddresser
from .assembler import BlobAssembler
from .adapters.ffmpeg import FfmpegTranscoder
from .cipher import SegmentCipher
from .config import get_settings
from .cost import CostEstimator
from .logging_config import setup_structured_logging
from .types import EncodingType, PipelineError

PLAYLIST_NAME = "playlist.m3u8"
COVER_NAME = "cover.png"


async def _prepare(video: bytes, split: float, ffmpeg_path: str):
    transcoded = await FfmpegTranscoder(ffmpeg_path).segment(video, split)
    key = SegmentCipher.generate_key()
    SegmentCipher().encrypt_segments(transcoded.segments, key)
    assembler = BlobAssembler()
    return assembler, assembler.assemble(transcoded.segments, split, release=True), transcoded.cover, key


# --- CLI Commands ---
@click.group()
@click.option("--log-level", default=None, help="Override the configured log level.")
@click.pass_context
def cli(ctx, log_level):
    """Prepare encrypted HLS assets and estimate their storage cost."""
    settings = get_settings()
    setup_structured_logging(log_level or settings.log_level)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("video", type=click.Path(exists=True, dir_okay=False))
@click.option("--out", "out_dir", required=True, type=click.Path(file_okay=False),
              help="Directory to write the prepared assets to.")
@click.option("--split", type=float, default=None, help="Segment duration in seconds.")
@click.option("--ffmpeg", "ffmpeg_path", default="ffmpeg", help="Path to the ffmpeg binary.")
@click.pass_context
def prepare(ctx, video, out_dir, split, ffmpeg_path):
    """Transcode, encrypt and assemble VIDEO into OUT."""
    settings = ctx.obj["settings"]
    split = split or settings.split_seconds
    with open(video, "rb") as f:
        raw = f.read()

    click.echo(f"Preparing {video} with {split:g}s segments...")
    try:
        assembler, assembled, cover, key = asyncio.run(_prepare(raw, split, ffmpeg_path))
    except PipelineError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    os.makedirs(out_dir, exist_ok=True)
    outputs = {
        assembler.binary_name: assembled.data,
        PLAYLIST_NAME: assembled.manifest.encode("utf-8"),
        COVER_NAME: cover,
        assembler.key_uri: key,
    }
    for name, data in outputs.items():
        with open(os.path.join(out_dir, name), "wb") as f:
            f.write(data)

    click.echo(f"Wrote {len(assembled.ranges)} segments ({len(assembled.data)} bytes) to {out_dir}")


@cli.command()
@click.option("--size", "sizes", type=int, multiple=True, required=True,
              help="Asset size in bytes; repeat for several assets.")
@click.option("--epochs", type=int, default=None, help="Retention in storage epochs.")
@click.pass_context
def estimate(ctx, sizes, epochs):
    """Print the settlement and native funding amounts for the given sizes."""
    settings = ctx.obj["settings"]
    epochs = epochs or settings.retention_epochs
    try:
        result = CostEstimator.from_settings(settings).estimate(sizes, epochs)
    except PipelineError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Total bytes: {result.total_bytes}")
    click.echo(f"Epochs: {result.epochs}")
    click.echo(f"Settlement amount: {result.settlement_amount}")
    click.echo(f"Native before buffer: {result.native_before_buffer}")
    click.echo(f"Native amount: {result.native_amount}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--shards", type=int, required=True, help="Network shard count.")
@click.pass_context
def address(ctx, path, shards):
    """Print the content id and integrity root of a file."""
    settings = ctx.obj["settings"]
    with open(path, "rb") as f:
        data = f.read()
    try:
        addresser = ContentAddresser(shards, EncodingType[settings.encoding_type])
        root = addresser.integrity_root(data)
        content_id = addresser.content_id(data, root)
    except PipelineError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Content id: {content_id}")
    click.echo(f"Integrity root: 0x{root.hex()}")
    click.echo(f"Size: {len(data)}")


if __name__ == '__main__':
    cli()
