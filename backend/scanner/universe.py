"""
Universe management — index constituent lists.

Fetches S&P 500 / Nasdaq 100 / Dow Jones constituents as JSON and the
Russell 2000 as CSV, normalizes tickers to Yahoo style ("BRK.B" → "BRK-B"),
and caches each index in memory for 24 hours. A failed fetch raises and is
never cached; the previous entry (if any) stays in place.
"""
from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

import pandas as pd
import requests

from .cache import Clock, KeyedCache
from .config import FORMAT_CSV, FORMAT_JSON, IndexConfig, ScannerConfig
from .errors import ConstituentFetchError, DataValidationError
from .models import Constituent

logger = logging.getLogger(__name__)

FetchText = Callable[[str, float], str]


def http_get_text(url: str, timeout: float) -> str:
    """GET a URL and return the body, raising on any non-2xx status."""
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.text


def normalize_symbol(raw: str) -> str:
    return str(raw).strip().replace(".", "-")


# ── Parsers ──────────────────────────────────────────────────────────────────

def parse_json_constituents(text: str) -> list[Constituent]:
    """Parse a JSON array of {"Symbol": ..., "Name": ...} records."""
    records = json.loads(text)
    if not isinstance(records, list):
        raise DataValidationError("constituent JSON must be an array of records")
    if not records:
        return []

    df = pd.DataFrame([r for r in records if isinstance(r, dict)])
    if "Symbol" not in df.columns:
        raise DataValidationError("constituent JSON records have no 'Symbol' field")
    if "Name" not in df.columns:
        df["Name"] = ""

    bad = df["Symbol"].isna().sum() + (len(records) - len(df))
    if bad:
        logger.warning(f"[universe] Dropped {bad} malformed constituent records")

    df = df.dropna(subset=["Symbol"])
    df["Symbol"] = df["Symbol"].astype(str).str.strip().str.replace(".", "-", regex=False)
    df["Name"] = df["Name"].fillna("").astype(str).str.strip()
    df = df[df["Symbol"].str.len() > 0]
    df = df.drop_duplicates(subset=["Symbol"], keep="first")
    return [Constituent(symbol=s, name=n) for s, n in zip(df["Symbol"], df["Name"])]


def parse_csv_constituents(text: str) -> list[Constituent]:
    """
    Parse a "ticker,name" CSV with a header row.

    Company names may contain unquoted commas, so everything after the first
    field is the name.
    """
    out: list[Constituent] = []
    seen: set[str] = set()
    for line in text.strip().splitlines()[1:]:
        ticker, _, name = line.partition(",")
        symbol = normalize_symbol(ticker)
        if not symbol or symbol in seen:
            continue
        seen.add(symbol)
        out.append(Constituent(symbol=symbol, name=name.strip()))
    return out


# ── Resolver ─────────────────────────────────────────────────────────────────

class ConstituentResolver:
    """Index → constituents, with a per-index TTL cache."""

    def __init__(
        self,
        config: ScannerConfig | None = None,
        fetch_text: FetchText = http_get_text,
        clock: Clock = time.time,
    ):
        self.config = config or ScannerConfig()
        self.fetch_text = fetch_text
        self.cache: KeyedCache[list[Constituent]] = KeyedCache(
            self.config.constituents_ttl_seconds, clock=clock, name="constituents",
        )

    def source_url(self, index: IndexConfig) -> str:
        if index.format == FORMAT_CSV:
            return index.file if index.file.startswith("http") else self.config.russell_2000_csv_url
        return f"{self.config.constituents_base_url}/{index.file}"

    def fetch_constituents(self, index_key: str, source: str, fmt: str) -> list[Constituent]:
        """
        Return the constituents of one index, from cache when younger than
        the TTL. Errors propagate and do not touch the cache.
        """
        cached = self.cache.get(index_key)
        if cached is not None:
            logger.debug(f"[universe] {index_key}: {len(cached)} constituents from cache")
            return cached

        try:
            text = self.fetch_text(source, self.config.request_timeout)
            if fmt == FORMAT_CSV:
                data = parse_csv_constituents(text)
            elif fmt == FORMAT_JSON:
                data = parse_json_constituents(text)
            else:
                raise DataValidationError(f"unknown constituent format '{fmt}'")
        except (requests.RequestException, ValueError) as exc:
            raise ConstituentFetchError(index_key, str(exc)) from exc

        self.cache.put(index_key, data)
        logger.info(f"[universe] {index_key}: fetched {len(data)} constituents")
        return data

    def resolve(self, index: IndexConfig) -> list[Constituent]:
        return self.fetch_constituents(index.key, self.source_url(index), index.format)

    def resolve_all(self) -> dict[str, list[Constituent]]:
        """
        Fetch every configured index concurrently. An index that fails is
        logged and left out of the result.
        """
        indices = self.config.indices
        results: dict[str, list[Constituent]] = {}
        if not indices:
            return results

        with ThreadPoolExecutor(max_workers=min(len(indices), self.config.max_workers)) as pool:
            futures = {pool.submit(self.resolve, cfg): cfg.key for cfg in indices}
            for future in as_completed(futures):
                key = futures[future]
                try:
                    results[key] = future.result()
                except Exception as exc:
                    logger.warning(f"[universe] {key}: skipped ({exc})")

        # Keep configuration order regardless of completion order.
        return {cfg.key: results[cfg.key] for cfg in indices if cfg.key in results}

    def symbol_names(self, by_index: dict[str, list[Constituent]]) -> dict[str, str]:
        """Merge per-index lists into symbol → name; the first index listing a symbol names it."""
        names: dict[str, str] = {}
        for constituents in by_index.values():
            for c in constituents:
                if c.symbol not in names:
                    names[c.symbol] = c.name
        return names
