"""
Burner - stake money on learning a topic, prove it with an AI exam.

This package implements the commitment and exam lifecycle: AI question
generation, LLM-as-judge grading, and stake resolution (save, burn, retry).
"""

__version__ = "1.0.0"
