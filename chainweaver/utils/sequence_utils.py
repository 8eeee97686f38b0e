"""
ChainWeaver v0.1.0

Sequence utility functions for ChainWeaver.

Provides the strand and overlap operations used when fragments are joined.
"""

from typing import Iterable


def reverse_complement(sequence: str) -> str:
    """
    Generate reverse complement of DNA sequence.

    Args:
        sequence: DNA sequence string

    Returns:
        Reverse complement sequence

    Example:
        >>> reverse_complement("ATCG")
        'CGAT'
    """
    complement_map = {
        'A': 'T', 'T': 'A',
        'G': 'C', 'C': 'G',
        'N': 'N',
        'a': 't', 't': 'a',
        'g': 'c', 'c': 'g',
        'n': 'n'
    }

    return ''.join(complement_map.get(base, base) for base in reversed(sequence))


def overlap_concat(left: str, right: str, overlap: int) -> str:
    """
    Join two sequences that share ``overlap`` bases.

    The shared bases are kept once: ``left + right[overlap:]``.

    Args:
        left: Upstream sequence
        right: Downstream sequence
        overlap: Number of bases at the end of ``left`` repeated at the start of ``right``

    Returns:
        Joined sequence

    Raises:
        ValueError: If either sequence is shorter than the overlap or the
            shared bases differ

    Example:
        >>> overlap_concat("ACGTT", "TTGCA", 2)
        'ACGTTGCA'
    """
    if overlap < 0:
        raise ValueError(f"overlap must be >= 0, got {overlap}")
    if overlap == 0:
        return left + right

    if len(left) < overlap or len(right) < overlap:
        raise ValueError(
            f"sequences of length {len(left)} and {len(right)} cannot share {overlap} bases"
        )

    if left[-overlap:].upper() != right[:overlap].upper():
        raise ValueError(
            f"overlap {left[-overlap:]!r} != {right[:overlap]!r}"
        )

    return left + right[overlap:]


def concat_chain(sequences: Iterable[str], overlap: int) -> str:
    """
    Join an ordered run of fragments, removing each shared overlap once.

    Example:
        >>> concat_chain(["ACGT", "GTCA", "CATT"], 2)
        'ACGTCATT'
    """
    result = None
    for sequence in sequences:
        result = sequence if result is None else overlap_concat(result, sequence, overlap)
    return result or ""


__all__ = [
    'reverse_complement',
    'overlap_concat',
    'concat_chain',
]
