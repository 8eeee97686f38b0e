#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Tests for sequence manipulation utilities.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest
from chainweaver.utils.sequence_utils import (
    concat_chain,
    overlap_concat,
    reverse_complement,
)


class TestReverseComplement:
    """Test reverse complement function."""

    def test_reverse_complement_basic(self):
        """Test basic reverse complement."""
        assert reverse_complement("ATCG") == "CGAT"

    def test_reverse_complement_palindrome(self):
        """Test reverse complement of palindromic sequence."""
        sequence = "GAATTC"  # EcoRI site (palindrome)
        assert reverse_complement(sequence) == sequence

    def test_reverse_complement_twice(self):
        """Test that double reverse complement returns original."""
        original = "ATCGATCGATCG"
        assert reverse_complement(reverse_complement(original)) == original

    def test_reverse_complement_lowercase_and_n(self):
        """Test that case and ambiguous bases are kept."""
        assert reverse_complement("acgN") == "Ncgt"

    def test_reverse_complement_empty(self):
        assert reverse_complement("") == ""


class TestOverlapConcat:
    """Test joining overlapping sequences."""

    def test_no_overlap(self):
        """Test plain concatenation."""
        assert overlap_concat("AAA", "CCC", 0) == "AAACCC"

    def test_overlap_kept_once(self):
        """Test that shared bases appear once."""
        assert overlap_concat("ACGTT", "TTGCA", 2) == "ACGTTGCA"

    def test_overlap_case_insensitive(self):
        assert overlap_concat("ACgt", "GTAA", 2) == "ACgtAA"

    def test_mismatch(self):
        """Test that non-matching overlaps are rejected."""
        with pytest.raises(ValueError):
            overlap_concat("ACGT", "CCCC", 2)

    def test_sequence_shorter_than_overlap(self):
        with pytest.raises(ValueError):
            overlap_concat("AC", "ACGT", 3)

    def test_negative_overlap(self):
        with pytest.raises(ValueError):
            overlap_concat("AC", "GT", -1)


class TestConcatChain:
    """Test joining runs of fragments."""

    def test_chain(self):
        assert concat_chain(["ACGT", "GTCA", "CATT"], 2) == "ACGTCATT"

    def test_single_and_empty(self):
        assert concat_chain(["ACGT"], 3) == "ACGT"
        assert concat_chain([], 3) == ""

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
