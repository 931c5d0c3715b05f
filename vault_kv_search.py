#!/usr/bin/env python3
"""
===================================================================
VAULT KV SEARCH
===================================================================

PURPOSE:
    Recursively crawl HashiCorp Vault key-value secret stores and report
    every secret whose path, key or value contains a substring (or matches
    a regular expression). Used to audit secret sprawl across all KV mounts
    of an organization's Vault.

FEATURES:
    ✓ Searches a single path or every kv/generic mount at once
    ✓ Transparent support for KV v1 (flat) and KV v2 (versioned) engines
    ✓ Automatic KV version detection from mount options
    ✓ Concurrent directory crawling with a configurable per-listing delay
    ✓ Recursive flattening of nested secret payloads
    ✓ Substring or regular expression matching on path, key and value
    ✓ Streaming JSON (NDJSON) or human-readable output
    ✓ Secret values obfuscated unless explicitly requested

REQUIREMENTS:
    pip install hvac tqdm

USAGE:
    export VAULT_ADDR="https://vault.example.org:8200"
    export VAULT_TOKEN="hvs.xxxxxxxx"

    # Search every KV store for a value
    vault-kv-search foo

    # Search one path, matching keys and values, JSON output
    vault-kv-search secret/ foo --search key,value --json

    # Regular expression search on a KV v2 store, skip autodetection
    vault-kv-search -r -k 2 secret/app '^postgres://'

CONFIGURATION:
    Set via environment variables:
    - VAULT_ADDR: Vault server address (default: http://127.0.0.1:8200)
    - VAULT_TOKEN: Vault token
    - VAULT_NAMESPACE: Vault Enterprise namespace
    - VAULT_CACERT: CA bundle used to verify the server certificate
    - VAULT_SKIP_VERIFY: Disable TLS verification (default: false)
    - CRAWLING_DELAY_MS: Delay before each listing call (default: 15)
    - REQUEST_TIMEOUT_SECONDS: Vault request timeout (default: 30)
    - MAX_CONCURRENT_REQUESTS: Parallel Vault calls (default: 20)
    - LOG_FORMAT: text|json (default: text)

===================================================================
"""
import argparse
import asyncio
import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple

import hvac
from tqdm import tqdm

__version__ = "1.0.0"

# ===================================================================
# CONFIGURATION & CONSTANTS
# ===================================================================

# Environment-driven configuration
VAULT_ADDR = os.environ.get("VAULT_ADDR", "http://127.0.0.1:8200")
VAULT_TOKEN = os.environ.get("VAULT_TOKEN")
VAULT_NAMESPACE = os.environ.get("VAULT_NAMESPACE", "")
VAULT_CACERT = os.environ.get("VAULT_CACERT", "")
VAULT_SKIP_VERIFY = os.environ.get("VAULT_SKIP_VERIFY", "false").lower() in ("1", "true", "yes")
CRAWLING_DELAY_MS = int(os.environ.get("CRAWLING_DELAY_MS", "15"))
REQUEST_TIMEOUT_SECONDS = int(os.environ.get("REQUEST_TIMEOUT_SECONDS", "30"))
MAX_CONCURRENT_REQUESTS = int(os.environ.get("MAX_CONCURRENT_REQUESTS", "20"))
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # text|json

# Search objects
SEARCH_KEY = "key"
SEARCH_VALUE = "value"
SEARCH_PATH = "path"
SEARCH_OBJECT_CHOICES = (SEARCH_KEY, SEARCH_VALUE, SEARCH_PATH)
DEFAULT_SEARCH_OBJECTS = (SEARCH_VALUE,)

# Mount types that hold key-value secrets (generic is the pre-0.8 name of kv v1)
KV_ENGINE_TYPES = {"kv", "generic"}

# KV v2 path indirection
KV2_LISTING_MARKER = "metadata/"
KV2_READ_MARKER = "data/"
KV2_METADATA_FIELD = "metadata"

OBFUSCATED_VALUE = "obfuscated"
PATH_SEPARATOR = "/"


# ===================================================================
# LOGGING SETUP
# ===================================================================

class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add custom fields
        if hasattr(record, 'vault_path'):
            log_data["vault_path"] = record.vault_path
        if hasattr(record, 'mount'):
            log_data["mount"] = record.mount

        return json.dumps(log_data)


def setup_logging(log_format: str = "text") -> logging.Logger:
    """Setup logging with either text or JSON format.

    Logs go to stderr: stdout is reserved for match output so that JSON
    results can be piped.
    """
    logger = logging.getLogger(__name__)
    logger.setLevel(logging.INFO)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    logger.addHandler(handler)
    return logger


logger = setup_logging(LOG_FORMAT)


# ===================================================================
# ERRORS
# ===================================================================

class VaultSearchError(Exception):
    """Base class for every fatal condition raised by the search."""


class ConfigurationError(VaultSearchError):
    """Invalid command-line configuration, detected before any Vault call."""


class StoreError(VaultSearchError):
    """A Vault API call failed."""


class MountNotFoundError(VaultSearchError):
    """No mount matches the requested start path."""


class ListingError(VaultSearchError):
    """Listing a path failed or returned warnings."""


class ReadError(VaultSearchError):
    """Reading a leaf secret failed."""


class UnsupportedPayloadTypeError(VaultSearchError):
    """A secret payload holds a value type we do not know how to compare."""


# ===================================================================
# DATA MODEL
# ===================================================================

@dataclass(frozen=True)
class MountInfo:
    """A secrets engine mount as reported by sys/mounts."""
    mount_path: str
    engine_type: str
    version: int = 1


@dataclass(frozen=True)
class CrawlRoot:
    """Where a crawl starts. ``mount`` is the owning mount, trailing slash included."""
    logical_path: str
    version: int
    mount: Optional[str] = None


@dataclass
class Listing:
    entries: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class FlattenedField:
    dir_entry: str
    full_path: str
    key: str
    value: str


@dataclass(frozen=True)
class SecretMatch:
    search_object: str
    full_path: str
    key: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "search": self.search_object,
            "path": self.full_path,
            "key": self.key,
            "value": self.value,
        }


@dataclass(frozen=True)
class SearchConfig:
    """Immutable search settings shared read-only by every crawl task."""
    search_string: str
    search_objects: Tuple[str, ...] = DEFAULT_SEARCH_OBJECTS
    use_regex: bool = False
    show_secrets: bool = False
    json_output: bool = False
    crawling_delay_ms: int = CRAWLING_DELAY_MS
    max_concurrency: int = MAX_CONCURRENT_REQUESTS


def parse_search_objects(values: Optional[List[str]]) -> Tuple[str, ...]:
    """
    Normalize --search values into a tuple of search objects.

    Accepts repeated flags and comma separated lists, keeps the first
    occurrence order and drops duplicates.

    Raises:
        ConfigurationError: if a value is not one of key, value, path
    """
    if not values:
        return DEFAULT_SEARCH_OBJECTS

    objects: List[str] = []
    for raw in values:
        for item in raw.split(","):
            item = item.strip()
            if not item:
                continue
            if item not in SEARCH_OBJECT_CHOICES:
                raise ConfigurationError(
                    f"{item} is not a valid flag choice. "
                    f"Choices are {sorted(SEARCH_OBJECT_CHOICES)}"
                )
            if item not in objects:
                objects.append(item)

    return tuple(objects) or DEFAULT_SEARCH_OBJECTS


# ===================================================================
# VAULT STORE ADAPTER
# ===================================================================

def build_client(timeout: int = REQUEST_TIMEOUT_SECONDS) -> hvac.Client:
    """
    Create an hvac client from the standard Vault environment variables.

    Args:
        timeout: Request timeout in seconds, applied to every Vault call

    Returns:
        Configured hvac.Client
    """
    verify: Any = True
    if VAULT_SKIP_VERIFY:
        verify = False
    elif VAULT_CACERT:
        verify = VAULT_CACERT

    return hvac.Client(
        url=VAULT_ADDR,
        token=VAULT_TOKEN,
        namespace=VAULT_NAMESPACE or None,
        verify=verify,
        timeout=timeout,
    )


def _parse_kv_version(options: Optional[Dict[str, Any]]) -> int:
    raw = (options or {}).get("version")
    try:
        version = int(raw)
    except (TypeError, ValueError):
        return 1
    return version if version > 0 else 1


class VaultStore:
    """Thin adapter exposing the three Vault operations the crawler needs."""

    def __init__(self, client: hvac.Client):
        self.client = client

    def list_mounts(self) -> Dict[str, MountInfo]:
        try:
            response = self.client.sys.list_mounted_secrets_engines()
        except Exception as e:
            raise StoreError(f"error while listing mounts: {e}") from e

        # Newer Vault versions wrap mounts in "data" and also repeat them at top level
        mounts = response.get("data") or response

        result = {}
        for mount_path, config in mounts.items():
            if not isinstance(config, dict) or "type" not in config:
                continue
            result[mount_path] = MountInfo(
                mount_path=mount_path,
                engine_type=config["type"],
                version=_parse_kv_version(config.get("options")),
            )
        return result

    def list(self, path: str) -> Optional[Listing]:
        try:
            response = self.client.list(path)
        except Exception as e:
            raise StoreError(str(e)) from e

        if response is None:
            return None

        data = response.get("data") or {}
        return Listing(
            entries=list(data.get("keys") or []),
            warnings=list(response.get("warnings") or []),
        )

    def read(self, path: str) -> Optional[Dict[str, Any]]:
        """Return the secret data, or None when Vault answers 404.

        KV v2 metadata listings keep keys whose latest version is deleted or
        destroyed; reading their data path 404s.
        """
        try:
            response = self.client.read(path)
        except Exception as e:
            raise StoreError(str(e)) from e

        if response is None:
            return None
        return response.get("data") or {}


# ===================================================================
# PATH TRANSLATION
# ===================================================================

def _mount_prefix(path: str, mount: Optional[str]) -> str:
    if mount:
        return mount if mount.endswith(PATH_SEPARATOR) else mount + PATH_SEPARATOR
    head, sep, _ = path.partition(PATH_SEPARATOR)
    return head + sep


def to_listing_path(logical_path: str, version: int, mount: Optional[str] = None) -> str:
    """Insert the KV v2 metadata marker right after the mount name."""
    if version <= 1:
        return logical_path
    prefix = _mount_prefix(logical_path, mount)
    if not logical_path.startswith(prefix) or not prefix.endswith(PATH_SEPARATOR):
        return logical_path
    return prefix + KV2_LISTING_MARKER + logical_path[len(prefix):]


def to_read_path(listing_path: str, version: int, mount: Optional[str] = None) -> str:
    """Swap the metadata marker for the data marker to fetch the payload."""
    if version <= 1:
        return listing_path
    prefix = _mount_prefix(listing_path, mount)
    marker = prefix + KV2_LISTING_MARKER
    if not listing_path.startswith(marker):
        return listing_path
    return prefix + KV2_READ_MARKER + listing_path[len(marker):]


def to_reported_path(read_path: str, version: int, mount: Optional[str] = None) -> str:
    """Strip the data marker so matches show the path a user would type."""
    if version <= 1:
        return read_path
    prefix = _mount_prefix(read_path, mount)
    marker = prefix + KV2_READ_MARKER
    if not read_path.startswith(marker):
        return read_path
    return prefix + read_path[len(marker):]


# ===================================================================
# PAYLOAD FLATTENING & MATCHING
# ===================================================================

def _coerce_scalar(value: Any) -> Optional[str]:
    # bool before int: bool is an int subclass
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        # positional notation: 1e20 -> 100000000000000000000
        return format(Decimal(repr(value)), "f")
    if value is None or isinstance(value, list):
        return None
    raise UnsupportedPayloadTypeError(
        f"I don't know what {type(value).__name__} is"
    )


def flatten(version: int, payload: Dict[str, Any]) -> List[Tuple[str, str]]:
    """
    Reduce a nested secret payload to flat (key, string value) pairs.

    Nested mappings are descended in place and iteration of their siblings
    continues afterwards, so every branch is visited in insertion order.
    Lists and nulls are not match candidates. For KV v2 the top-level
    revision metadata is skipped.

    Args:
        version: KV engine version of the mount
        payload: Secret data as returned by Vault

    Returns:
        List of (key, value) tuples, one per terminal scalar

    Raises:
        UnsupportedPayloadTypeError: on a value type outside the JSON set
    """
    pairs: List[Tuple[str, str]] = []

    def _descend(data: Dict[str, Any], top_level: bool) -> None:
        for key, value in data.items():
            if top_level and version > 1 and key == KV2_METADATA_FIELD:
                continue
            if isinstance(value, dict):
                _descend(value, False)
                continue
            text = _coerce_scalar(value)
            if text is not None:
                pairs.append((key, text))

    _descend(payload, True)
    return pairs


def flatten_fields(version: int, payload: Dict[str, Any], dir_entry: str, full_path: str) -> List[FlattenedField]:
    return [
        FlattenedField(dir_entry=dir_entry, full_path=full_path, key=key, value=value)
        for key, value in flatten(version, payload)
    ]


def matches(search_object: str, candidate: str, search_term: str, use_regex: bool) -> bool:
    """
    Compare one candidate text against the search term.

    A malformed regular expression never matches instead of failing the run.
    """
    if use_regex:
        try:
            return re.search(search_term, candidate) is not None
        except re.error:
            return False
    return search_term in candidate


def candidate_for(search_object: str, flat: FlattenedField) -> str:
    if search_object == SEARCH_PATH:
        return flat.dir_entry
    if search_object == SEARCH_KEY:
        return flat.key
    return flat.value


# ===================================================================
# REPORTING
# ===================================================================

class Reporter:
    """Writes matches to the output stream as soon as they are found."""

    def __init__(self, json_output: bool = False, show_secrets: bool = False, stream: Optional[TextIO] = None):
        self.json_output = json_output
        self.show_secrets = show_secrets
        self.stream = stream if stream is not None else sys.stdout
        self.count = 0

    def report(self, match: SecretMatch) -> None:
        self.count += 1
        if self.json_output:
            data = match.to_dict()
            if not self.show_secrets:
                data["value"] = OBFUSCATED_VALUE
            self.stream.write(json.dumps(data, separators=(",", ":")) + "\n")
        else:
            lines = [
                f"{match.search_object.capitalize()} match:",
                f"\tSecret: {match.full_path}",
                f"\tKey: {match.key}",
            ]
            if self.show_secrets:
                lines.append(f"\tValue: {match.value}")
            self.stream.write("\n".join(lines) + "\n\n")
        self.stream.flush()

    def announce(self, message: str) -> None:
        """Informational line, human-readable mode only."""
        if self.json_output:
            return
        self.stream.write(message + "\n")
        self.stream.flush()


# ===================================================================
# MOUNT RESOLUTION
# ===================================================================

class MountResolver:
    """Decides which mounts to crawl and with which KV version."""

    def __init__(self, store: VaultStore, reporter: Reporter):
        self.store = store
        self.reporter = reporter

    def resolve(self, explicit_path: Optional[str] = None, explicit_version: int = 0) -> List[CrawlRoot]:
        if explicit_path is None:
            return self._all_kv_stores()

        explicit_path = explicit_path.lstrip(PATH_SEPARATOR)
        if explicit_version:
            head = explicit_path.split(PATH_SEPARATOR, 1)[0]
            return [CrawlRoot(explicit_path, explicit_version, head + PATH_SEPARATOR)]

        mount = self._find_mount(explicit_path)
        self.reporter.announce(f"Store path {json.dumps(mount.mount_path.rstrip(PATH_SEPARATOR))}, version: {mount.version}")
        return [CrawlRoot(explicit_path, mount.version, mount.mount_path)]

    def _all_kv_stores(self) -> List[CrawlRoot]:
        mounts = self.store.list_mounts()
        roots = [
            CrawlRoot(info.mount_path, info.version, info.mount_path)
            for path, info in sorted(mounts.items())
            if info.engine_type in KV_ENGINE_TYPES
        ]
        logger.debug(f"Found {len(roots)} KV mounts out of {len(mounts)}")
        return roots

    def _find_mount(self, path: str) -> MountInfo:
        normalized = path
        if not normalized.endswith(PATH_SEPARATOR):
            normalized += PATH_SEPARATOR

        best = None
        for mount_path, info in self.store.list_mounts().items():
            prefix = mount_path if mount_path.endswith(PATH_SEPARATOR) else mount_path + PATH_SEPARATOR
            if normalized.startswith(prefix):
                if best is None or len(prefix) > len(best.mount_path):
                    best = MountInfo(prefix, info.engine_type, info.version)

        if best is None:
            raise MountNotFoundError(f"can't find secret store version for {path}")
        return best


# ===================================================================
# CRAWLER
# ===================================================================

class Crawler:
    """
    Concurrent recursive walker over one crawl root.

    Every subdirectory is crawled by its own task. ``crawl()`` is the join
    barrier: it returns only once every transitively spawned task is done,
    and on the first fatal error it cancels the remaining tasks and re-raises.
    """

    def __init__(self, store: VaultStore, config: SearchConfig, reporter: Reporter, progress: Optional[tqdm] = None):
        self.store = store
        self.config = config
        self.reporter = reporter
        self.progress = progress
        self._pending: set = set()
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def crawl(self, root: CrawlRoot) -> None:
        start = root.logical_path
        if not start.endswith(PATH_SEPARATOR):
            start += PATH_SEPARATOR

        self._semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))
        self._pending = set()
        self._dispatch(to_listing_path(start, root.version, root.mount), root)

        try:
            while self._pending:
                done, _ = await asyncio.wait(self._pending, return_when=asyncio.FIRST_EXCEPTION)
                self._pending -= done
                errors = [task.exception() for task in done if not task.cancelled() and task.exception()]
                if errors:
                    raise errors[0]
        except BaseException:
            for task in self._pending:
                task.cancel()
            await asyncio.gather(*self._pending, return_exceptions=True)
            self._pending.clear()
            raise

    def _dispatch(self, listing_path: str, root: CrawlRoot) -> None:
        task = asyncio.ensure_future(self._walk(listing_path, root))
        self._pending.add(task)

    async def _call(self, func: Callable, *args):
        async with self._semaphore:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, func, *args)

    async def _walk(self, listing_path: str, root: CrawlRoot) -> None:
        # Slow down a little the crawling
        await asyncio.sleep(self.config.crawling_delay_ms / 1000.0)

        try:
            listing = await self._call(self.store.list, listing_path)
        except StoreError as e:
            raise ListingError(f"failed to list {listing_path} while searching {self.config.search_string!r}: {e}") from e

        if listing is None:
            logger.warning(
                f"search-path {listing_path} doesn't have any contents. Skipping.",
                extra={"vault_path": listing_path},
            )
            return

        if listing.warnings:
            raise ListingError(listing.warnings[0])

        for entry in listing.entries:
            child = listing_path + entry
            if entry.endswith(PATH_SEPARATOR):
                self._dispatch(child, root)
            else:
                await self._process_leaf(entry, child, root)

    async def _process_leaf(self, dir_entry: str, listing_path: str, root: CrawlRoot) -> None:
        read_path = to_read_path(listing_path, root.version, root.mount)
        try:
            payload = await self._call(self.store.read, read_path)
        except StoreError as e:
            raise ReadError(f"failed to read {read_path}: {e}") from e

        if payload is None:
            logger.warning(
                f"secret {read_path} has no readable data (deleted or destroyed). Skipping.",
                extra={"vault_path": read_path},
            )
            return

        if self.progress is not None:
            self.progress.update(1)

        full_path = to_reported_path(read_path, root.version, root.mount)
        fields = flatten_fields(root.version, payload, dir_entry, full_path)

        for search_object in self.config.search_objects:
            for flat in fields:
                candidate = candidate_for(search_object, flat)
                if matches(search_object, candidate, self.config.search_string, self.config.use_regex):
                    self.reporter.report(SecretMatch(search_object, flat.full_path, flat.key, flat.value))


# ===================================================================
# MAIN ORCHESTRATION
# ===================================================================

async def run_search(
    config: SearchConfig,
    store: VaultStore,
    reporter: Reporter,
    start_path: Optional[str] = None,
    kv_version: int = 0,
    progress: Optional[tqdm] = None
) -> int:
    """
    Resolve crawl roots and crawl them one after the other.

    Args:
        config: Immutable search settings
        store: Vault adapter
        reporter: Match output
        start_path: Path to search under, or None for every KV mount
        kv_version: Forced KV version, 0 to autodetect
        progress: Optional progress bar counting secrets read

    Returns:
        Number of matches reported
    """
    resolver = MountResolver(store, reporter)
    roots = resolver.resolve(start_path, kv_version)

    if not roots:
        logger.warning("No KV secret stores found")

    crawler = Crawler(store, config, reporter, progress)
    for root in roots:
        start = root.logical_path if root.logical_path.endswith(PATH_SEPARATOR) else root.logical_path + PATH_SEPARATOR
        reporter.announce(f"Searching for substring '{config.search_string}' against: {list(config.search_objects)}")
        reporter.announce(f"Start path: {start}")
        logger.debug(f"Crawling {start} (kv v{root.version})", extra={"mount": root.mount})
        await crawler.crawl(root)

    return reporter.count


# ===================================================================
# COMMAND LINE INTERFACE
# ===================================================================

def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments and display help information."""
    parser = argparse.ArgumentParser(
        prog='vault-kv-search',
        description='Recursively search HashiCorp Vault KV stores for a substring',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
ENVIRONMENT VARIABLES:
  VAULT_ADDR               Vault server address
  VAULT_TOKEN              Vault token
  VAULT_NAMESPACE          Vault Enterprise namespace
  VAULT_CACERT             CA bundle for TLS verification
  VAULT_SKIP_VERIFY        Disable TLS verification (default: false)
  MAX_CONCURRENT_REQUESTS  Parallel Vault calls (default: 20)

USAGE EXAMPLES:
  Search every KV store:
    vault-kv-search foo

  Search one path for keys and values:
    vault-kv-search secret/ foo --search key,value

EXIT CODES:
  0   Success
  1   Error (invalid flag, Vault failure, etc.)
  130 Interrupted by user (Ctrl+C)
        '''
    )

    parser.add_argument(
        'positionals',
        nargs='+',
        metavar='[search-path] substring',
        help='Optional path to search under, then the substring to look for'
    )

    parser.add_argument(
        '--search',
        action='append',
        metavar='OBJECTS',
        help="Which Vault objects to search against. Choices are any and all of "
             "'key,value,path'. Can be repeated or given once as CSV (default: value)"
    )

    parser.add_argument(
        '-r', '--regex',
        action='store_true',
        help='Treat the substring as a regular expression'
    )

    parser.add_argument(
        '-s', '--showsecrets',
        action='store_true',
        help='Show secret values in the output'
    )

    parser.add_argument(
        '-j', '--json',
        action='store_true',
        help='Output one JSON object per match'
    )

    parser.add_argument(
        '-d', '--delay',
        type=int,
        default=CRAWLING_DELAY_MS,
        help=f'Delay in milliseconds before each listing call (default: {CRAWLING_DELAY_MS})'
    )

    parser.add_argument(
        '-k', '--kv-version',
        type=int,
        choices=[0, 1, 2],
        default=0,
        help='KV engine version of the search path, 0 to autodetect (default: 0)'
    )

    parser.add_argument(
        '-t', '--timeout',
        type=int,
        default=REQUEST_TIMEOUT_SECONDS,
        help=f'Vault request timeout in seconds (default: {REQUEST_TIMEOUT_SECONDS})'
    )

    parser.add_argument(
        '--max-concurrency',
        type=int,
        default=MAX_CONCURRENT_REQUESTS,
        help=f'Maximum parallel Vault calls (default: {MAX_CONCURRENT_REQUESTS})'
    )

    parser.add_argument(
        '--progress',
        action='store_true',
        help='Show a progress bar of secrets read on stderr'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        choices=['text', 'json'],
        default=LOG_FORMAT,
        help=f'Logging format (default: {LOG_FORMAT})'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose debug logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    args = parser.parse_args(argv)
    if len(args.positionals) > 2:
        parser.error("accepts at most 2 positional arguments: [search-path] substring")
    return args


# ===================================================================
# MAIN ENTRY POINT
# ===================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with validation and error handling."""
    global logger

    args = parse_arguments(argv)

    if args.log_format != LOG_FORMAT:
        logger = setup_logging(args.log_format)
    logger.setLevel(logging.DEBUG if args.verbose else logging.INFO)

    try:
        search_objects = parse_search_objects(args.search)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    # A single positional means: search every KV store
    if len(args.positionals) == 1:
        start_path = None
        search_string = args.positionals[0]
    else:
        start_path, search_string = args.positionals

    config = SearchConfig(
        search_string=search_string,
        search_objects=search_objects,
        use_regex=args.regex,
        show_secrets=args.showsecrets,
        json_output=args.json,
        crawling_delay_ms=args.delay,
        max_concurrency=args.max_concurrency,
    )
    reporter = Reporter(config.json_output, config.show_secrets, sys.stdout)

    try:
        store = VaultStore(build_client(args.timeout))
        with tqdm(desc="Reading secrets", unit="secret", file=sys.stderr, disable=not args.progress) as pbar:
            count = asyncio.run(run_search(config, store, reporter, start_path, args.kv_version, pbar))
        logger.debug(f"Search complete. {count} matches")
        return 0

    except KeyboardInterrupt:
        logger.warning("Search interrupted by user")
        return 130
    except VaultSearchError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
