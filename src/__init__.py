"""Tally Sheet OCR System.

Reads photographed pipe tally sheets through a chain of cloud recognition
providers with an offline Tesseract fallback, corrects systematic OCR
errors, and extracts validated rows of serial number, length and weight.
"""
