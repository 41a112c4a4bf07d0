#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
gene_mapper.py
==============

Convert database gene accessions (Ensembl gene IDs) into unique,
human-readable gene symbols.

The lookup itself is delegated to an annotation source: any object with a
``lookup(accessions) -> dict`` method. Three are provided:

- MyGeneAnnotationSource: online resolution through MyGene.info
- TableAnnotationSource:  offline two-column TSV (accession, symbol)
- DictAnnotationSource:   in-memory mapping, mostly for tests

Symbol policy (resolve_symbols, make_unique_symbols, map_gene_symbols):
- an accession with no symbol, or an empty one, keeps its accession
- distinct accessions sharing a symbol get '.1', '.2', ... suffixes in
  first-seen order, so every returned label is unique
- a failing source raises LookupFailure; raw IDs are never substituted
"""

import os
import time
import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

import mygene
import pandas as pd

from fshdscope.errors import LookupFailure, NotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration and Defaults
# =============================================================================

DEFAULT_MYGENE_PARAMS = {
    'species': 'human',
    'scopes': 'ensembl.gene',
    'timeout': 60,
    'retries': 0,
    'backoff': 2.0,
}

TABLE_HEADER_FIELDS = {'gene_id', 'ensembl_gene_id', 'accession'}

SOURCES = ('mygene', 'table', 'none')


# =============================================================================
# Annotation Sources
# =============================================================================

def strip_version(accession):
    """
    Remove an Ensembl version suffix.

    >>> strip_version('ENSG00000141510.17')
    'ENSG00000141510'
    >>> strip_version('MT-CO1')
    'MT-CO1'
    """
    if accession.upper().startswith('ENS'):
        return accession.split('.')[0]
    return accession


class MyGeneAnnotationSource:
    """
    Resolve accessions to symbols through MyGene.info.

    Parameters
    ----------
    species : str
        Species passed to querymany (default: human)
    scopes : str
        Identifier scope of the accessions (default: ensembl.gene)
    timeout : float
        Seconds to wait for one query attempt before giving up
    retries : int
        Additional attempts after a failed one
    backoff : float
        Base delay in seconds; attempt N waits backoff * N before retrying
    client : object, optional
        Pre-built client exposing ``querymany``; a MyGeneInfo is created
        when omitted
    """

    def __init__(self, species='human', scopes='ensembl.gene', timeout=60,
                 retries=0, backoff=2.0, client=None):
        self.species = species
        self.scopes = scopes
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff
        self.client = client if client is not None else mygene.MyGeneInfo()

    def _query(self, query_ids):
        return self.client.querymany(
            query_ids,
            scopes=self.scopes,
            fields='symbol',
            species=self.species,
            verbose=False,
        )

    def _query_with_timeout(self, query_ids):
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self._query, query_ids)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            raise LookupFailure(
                f"MyGene.info did not answer within {self.timeout}s "
                f"({len(query_ids)} identifiers)"
            )
        except Exception as e:
            raise LookupFailure(f"MyGene.info query failed: {e}") from e
        finally:
            executor.shutdown(wait=False)

    def _fetch(self, query_ids):
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self._query_with_timeout(query_ids)
            except LookupFailure as e:
                logger.warning(f"Gene symbol lookup attempt {attempt}/{attempts} failed: {e}")
                if attempt == attempts:
                    raise
                time.sleep(self.backoff * attempt)

    @staticmethod
    def _parse_hits(hits):
        """Turn a querymany hit list into {query: symbol or None}."""
        if not isinstance(hits, list):
            raise LookupFailure(
                f"Malformed MyGene.info response: expected a list, got {type(hits).__name__}"
            )

        symbols = {}
        for hit in hits:
            if not isinstance(hit, dict) or 'query' not in hit:
                raise LookupFailure(f"Malformed MyGene.info hit: {hit!r}")
            query = str(hit['query'])
            symbol = None if hit.get('notfound') else hit.get('symbol')
            if symbol is not None and not isinstance(symbol, str):
                raise LookupFailure(
                    f"Malformed MyGene.info symbol for {query}: {symbol!r}"
                )
            # querymany returns one hit per match; keep the first usable one
            if symbols.get(query) is None:
                symbols[query] = symbol
        return symbols

    def lookup(self, accessions):
        base_ids = {acc: strip_version(acc) for acc in accessions}
        query_ids = list(dict.fromkeys(base_ids.values()))

        logger.info(f"  Querying MyGene.info for {len(query_ids)} identifiers "
                    f"(species={self.species}, scopes={self.scopes})...")
        symbols = self._parse_hits(self._fetch(query_ids))

        return {acc: symbols[base] for acc, base in base_ids.items() if base in symbols}


class TableAnnotationSource:
    """
    Offline accession-to-symbol table.

    The file is tab-separated with the accession in the first column and
    the symbol in the second. A header row is detected by its first field
    (gene_id, ensembl_gene_id or accession). Blank symbols are kept blank
    so they fall back to the accession like any other empty lookup.
    """

    def __init__(self, path):
        self.path = str(path)
        self.symbols = self._load(self.path)

    @staticmethod
    def _load(path):
        if not os.path.exists(path):
            raise NotFoundError(f"Gene symbol table not found: {path}")

        table = pd.read_csv(
            path,
            sep='\t',
            header=None,
            dtype=str,
            keep_default_na=False,
            compression='infer',
        )
        if table.shape[1] < 2:
            raise LookupFailure(
                f"Gene symbol table {path} needs two columns (accession, symbol), "
                f"found {table.shape[1]}"
            )
        if len(table) and table.iloc[0, 0].strip().lower() in TABLE_HEADER_FIELDS:
            table = table.iloc[1:]

        symbols = {}
        for accession, symbol in zip(table.iloc[:, 0], table.iloc[:, 1]):
            accession = accession.strip()
            if accession and accession not in symbols:
                symbols[accession] = symbol.strip()

        logger.info(f"Loaded {len(symbols)} gene symbols from {path}")
        return symbols

    def lookup(self, accessions):
        return {acc: self.symbols[acc] for acc in accessions if acc in self.symbols}

    def __len__(self):
        return len(self.symbols)


class DictAnnotationSource:
    """In-memory accession-to-symbol mapping that records its queries."""

    def __init__(self, mapping):
        self.mapping = dict(mapping)
        self.calls = []

    def lookup(self, accessions):
        self.calls.append(list(accessions))
        return {acc: self.mapping[acc] for acc in accessions if acc in self.mapping}


def build_annotation_source(params):
    """
    Create the annotation source described by the gene_mapping config section.

    Returns None for ``source: none``, meaning accessions are kept as-is.
    """
    source = params.get('source', 'mygene')

    if source == 'mygene':
        opts = {**DEFAULT_MYGENE_PARAMS, **{k: v for k, v in params.items() if k in DEFAULT_MYGENE_PARAMS}}
        return MyGeneAnnotationSource(**opts)
    if source == 'table':
        if not params.get('table'):
            raise ValueError("gene_mapping.table is required when gene_mapping.source is 'table'")
        return TableAnnotationSource(params['table'])
    if source == 'none':
        return None

    raise ValueError(f"Unknown gene_mapping.source '{source}' (expected one of {SOURCES})")


# =============================================================================
# Symbol Mapping
# =============================================================================

def _clean_symbol(value):
    """Return a usable symbol or None for missing/empty values."""
    if value is None:
        return None
    if isinstance(value, float) and value != value:
        return None
    value = str(value).strip()
    return value or None


def resolve_symbols(accessions, source):
    """
    Look up the base symbol of every distinct accession, without suffixes.

    Returns
    -------
    dict
        {accession: symbol} in first-seen order; accessions with no usable
        symbol map to themselves

    Raises
    ------
    LookupFailure
        If the source fails or returns something other than a mapping
    """
    unique_ids = list(dict.fromkeys(str(acc) for acc in accessions))
    if not unique_ids:
        return {}

    found = source.lookup(unique_ids)
    if not isinstance(found, Mapping):
        raise LookupFailure(
            f"Annotation source returned {type(found).__name__}, expected a mapping"
        )

    base_symbols = {}
    n_fallback = 0
    for acc in unique_ids:
        symbol = _clean_symbol(found.get(acc))
        if symbol is None:
            symbol = acc
            n_fallback += 1
        base_symbols[acc] = symbol

    logger.info(f"  Gene symbols: {len(unique_ids) - n_fallback} resolved, "
                f"{n_fallback} kept as accession")

    return base_symbols


def make_unique_symbols(base_symbols):
    """
    Suffix repeated symbols so every accession gets a distinct label.

    Parameters
    ----------
    base_symbols : dict
        {accession: symbol}; iteration order decides which accession keeps
        the bare symbol

    Returns
    -------
    dict
        {accession: unique label}
    """
    # A suffixed label must not steal the bare symbol of another accession
    reserved = set(base_symbols.values())
    used = set()
    next_suffix = {}
    mapping = {}
    n_suffixed = 0

    for acc, symbol in base_symbols.items():
        if symbol in used:
            n = next_suffix.get(symbol, 1)
            while f'{symbol}.{n}' in used or f'{symbol}.{n}' in reserved:
                n += 1
            next_suffix[symbol] = n + 1
            symbol = f'{symbol}.{n}'
            n_suffixed += 1
        used.add(symbol)
        mapping[acc] = symbol

    if n_suffixed:
        logger.info(f"  Gene symbols: {n_suffixed} de-duplicated with numeric suffixes")

    return mapping


def map_gene_symbols(accessions, source):
    """
    Map every accession to a unique, non-empty display symbol.

    Parameters
    ----------
    accessions : sequence of str
        Gene accessions in matrix row order; duplicates allowed
    source : annotation source
        Object with ``lookup(list_of_accessions) -> dict``

    Returns
    -------
    dict
        {accession: symbol} for each distinct input accession

    Raises
    ------
    LookupFailure
        If the source fails or returns something other than a mapping
    """
    return make_unique_symbols(resolve_symbols(accessions, source))


class GeneIdentifierMapper:
    """Bind an annotation source to the symbol mapping policy."""

    def __init__(self, source):
        self.source = source

    def resolve(self, accessions):
        return resolve_symbols(accessions, self.source)

    def map(self, accessions):
        return map_gene_symbols(accessions, self.source)
