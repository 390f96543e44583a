"""Core domain package for newsbeacon.

Core contains filtering, scoring, criticality and delivery logic without any
Telegram, OpenAI or storage-specific code, keeping the business logic portable.
"""
