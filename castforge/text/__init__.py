"""Transcript text handling"""
from .chunker import chunk_text, clean_transcript, split_into_sentences

__all__ = ["chunk_text", "clean_transcript", "split_into_sentences"]
