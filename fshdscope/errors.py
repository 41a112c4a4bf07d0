#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
errors.py
=========

Exceptions raised by the FSHDscope loading, annotation and merge stages.

Every error here is fatal to a pipeline run. The CLI catches
FSHDscopeError, logs it and exits non-zero; nothing below it retries or
substitutes partial data.
"""


class FSHDscopeError(Exception):
    """Base class for all pipeline errors."""


class NotFoundError(FSHDscopeError, FileNotFoundError):
    """An input file (count matrix, symbol table, config) does not exist."""


class ParseError(FSHDscopeError):
    """A count matrix file is malformed."""


class LookupFailure(FSHDscopeError):
    """The gene annotation source was unreachable or returned malformed data."""


class EmptySampleError(FSHDscopeError):
    """Filtering removed every gene or every cell."""


class InsufficientInputError(FSHDscopeError):
    """Too few sample containers were given to the merger."""


class DuplicateSampleError(FSHDscopeError):
    """Two sample containers share the same sample name."""


class DuplicateCellError(FSHDscopeError):
    """Two cells would share one identifier in the merged dataset."""
