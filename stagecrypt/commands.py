"""
Commands
"""
import logging
import sys
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import IO, Iterator, Optional, Type

import click
from smart_open import open as smart_open, parse_uri

from .benchmark import benchmark as run_benchmark
from .config import Config, EncryptionConfig, parse_size
from .exceptions import StagecryptException
from .files import atomic_write
from .logging_config import configure_logging
from .material import EncryptionMetadata, MasterKeyMaterial
from .reporter import NullReporter, Reporter, StdoutReporter
from .transfer import Strategy, decrypt_fileobj, encrypt_fileobj


METADATA_SUFFIX = ".meta.json"


class ByteSize(click.ParamType):
    """
    Number of bytes, with an optional K, M or G suffix
    """

    name = "size"

    def convert(self, value, param, ctx) -> int:
        if isinstance(value, int):
            return value
        try:
            return parse_size(value, "size")
        except ValueError as e:
            self.fail(str(e), param, ctx)

    def __repr__(self):  # pragma: no cover
        return "ByteSize"


def local_path(uri: str) -> Optional[Path]:
    """
    Return the local path for ``uri``, or None if it is a remote object
    """
    parsed = parse_uri(uri)
    if parsed.scheme != "file":
        return None
    return Path(parsed.uri_path)


def get_size(uri: str) -> Optional[int]:
    path = local_path(uri)
    if path is None:
        return None
    return path.stat().st_size


def open_source(uri: str) -> IO[bytes]:
    return smart_open(uri, "rb", compression="disable")


@contextmanager
def open_destination(uri: str) -> Iterator[IO[bytes]]:
    """
    Open ``uri`` for writing; local files only appear once complete
    """
    path = local_path(uri)
    if path is not None:
        with atomic_write(path) as handle:
            yield handle
    else:
        with smart_open(uri, "wb", compression="disable") as handle:
            yield handle


def get_material(config: Config) -> MasterKeyMaterial:
    if config.key is None:
        raise click.ClickException("The config does not contain a key section")
    return config.key.material


def get_settings(config: Config, strategy: Optional[str]) -> EncryptionConfig:
    if strategy is None:
        return config.encryption
    return replace(config.encryption, strategy=Strategy(strategy))


def get_reporter(verbose: bool) -> Type[Reporter]:
    if verbose:
        configure_logging(logging.DEBUG)
        return StdoutReporter
    return NullReporter


strategy_option = click.option(
    "--strategy",
    type=click.Choice([strategy.value for strategy in Strategy]),
    default=None,
    help="Override the configured strategy",
)
metadata_option = click.option(
    "--metadata",
    "metadata_uri",
    default=None,
    help=f"Metadata file (default: encrypted file path + {METADATA_SUFFIX})",
)
verbose_option = click.option(
    "--verbose", "-v", is_flag=True, default=False, help="Provide a progress report"
)


@click.group()
@click.argument(
    "config",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, resolve_path=True),
)
@click.pass_context
def cli(ctx, config: str):
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = Config(config)
    except Exception as e:
        raise click.ClickException(f"Invalid config: {e}")


@cli.command()
@click.pass_context
def test(ctx):
    """
    Test the config file is valid
    """
    # If it reaches this, the config file has been parsed
    sys.stdout.write("Config file syntax is correct\n")


@cli.command()
@click.option(
    "--size",
    "key_size",
    type=click.Choice(["128", "192", "256"]),
    default="256",
    help="Key size in bits",
)
def genkey(key_size: str):
    """
    Generate a new base64-encoded master key
    """
    material = MasterKeyMaterial.generate(int(key_size))
    sys.stdout.write(f"{material.query_stage_master_key}\n")


@cli.command()
@click.argument("source")
@click.argument("destination")
@metadata_option
@strategy_option
@verbose_option
@click.pass_context
def encrypt(
    ctx,
    source: str,
    destination: str,
    metadata_uri: Optional[str] = None,
    strategy: Optional[str] = None,
    verbose: bool = False,
):
    """
    Encrypt a file and write its metadata alongside
    """
    config: Config = ctx.obj["config"]
    material = get_material(config)
    settings = get_settings(config, strategy)
    report_class = get_reporter(verbose)

    try:
        with open_source(source) as src, open_destination(destination) as dest:
            metadata = encrypt_fileobj(
                src,
                dest,
                material,
                settings,
                size=get_size(source),
                report_class=report_class,
                label=source,
            )

            # Local ciphertext is only committed once its metadata is written
            with open_destination(
                metadata_uri or f"{destination}{METADATA_SUFFIX}"
            ) as handle:
                handle.write(metadata.to_json().encode("utf-8"))
    except (StagecryptException, OSError) as e:
        raise click.ClickException(f"Unable to encrypt {source}: {e}")


@cli.command()
@click.argument("source")
@click.argument("destination")
@metadata_option
@strategy_option
@verbose_option
@click.pass_context
def decrypt(
    ctx,
    source: str,
    destination: str,
    metadata_uri: Optional[str] = None,
    strategy: Optional[str] = None,
    verbose: bool = False,
):
    """
    Decrypt a file using its metadata
    """
    config: Config = ctx.obj["config"]
    material = get_material(config)
    settings = get_settings(config, strategy)
    report_class = get_reporter(verbose)

    try:
        with smart_open(metadata_uri or f"{source}{METADATA_SUFFIX}", "r") as handle:
            metadata = EncryptionMetadata.from_json(handle.read())

        with open_source(source) as src, open_destination(destination) as dest:
            decrypt_fileobj(
                src,
                dest,
                material,
                metadata,
                settings,
                size=get_size(source),
                report_class=report_class,
                label=source,
            )
    except (StagecryptException, OSError) as e:
        raise click.ClickException(f"Unable to decrypt {source}: {e}")


@cli.command()
@click.option(
    "--size",
    type=ByteSize(),
    default="10M",
    help="Payload size in bytes, eg 100K, 10M, 220000000",
)
@click.option("--runs", type=click.IntRange(min=1), default=1)
@click.option("--chunk-size", type=ByteSize(), default=None)
@click.option("--memory", is_flag=True, default=False, help="Trace peak memory")
@verbose_option
@click.pass_context
def benchmark(
    ctx,
    size: int,
    runs: int = 1,
    chunk_size: Optional[int] = None,
    memory: bool = False,
    verbose: bool = False,
):
    """
    Compare the stream and buffer strategies
    """
    config: Config = ctx.obj["config"]
    report_class = get_reporter(verbose)

    try:
        results = run_benchmark(
            size=size,
            runs=runs,
            chunk_size=chunk_size or config.encryption.chunk_size,
            temp_dir=config.encryption.temp_dir,
            trace_memory=memory,
            report_class=report_class,
        )
    except (StagecryptException, OSError) as e:
        raise click.ClickException(f"Benchmark failed: {e}")

    for result in results:
        peak = "-"
        if result.peak_memory is not None:
            peak = f"{result.peak_memory / (1024 * 1024):.2f} MB"
        sys.stdout.write(
            f"{result.name:<8} "
            f"{result.size:>12} bytes "
            f"{result.seconds * 1000:>10.1f} ms "
            f"{result.throughput:>8.1f} MB/s "
            f"{peak:>12}"
            "\n"
        )
