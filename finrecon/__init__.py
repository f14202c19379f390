"""Financial document reconciliation core.

Parses bank statement exports into canonical transactions, extracts
structured fields from invoices and receipts (embedded text, Tesseract
OCR fallback, regex rules, optional LLM disambiguation), and links
invoices to the transactions that paid them.
"""
