"""Minimal markup tree: tokenizer, arena-backed document and builder."""

from .tokenizer import Comment, TagClose, TagOpen, Text, parse_attributes, tokenize
from .tree import (
    DOCUMENT,
    ELEMENT,
    NO_PARENT,
    ROOT,
    TEXT,
    Document,
    TreeBuilder,
    build_document,
)

__all__ = [
    "DOCUMENT",
    "ELEMENT",
    "NO_PARENT",
    "ROOT",
    "TEXT",
    "Comment",
    "Document",
    "TagClose",
    "TagOpen",
    "Text",
    "TreeBuilder",
    "build_document",
    "parse_attributes",
    "tokenize",
]
