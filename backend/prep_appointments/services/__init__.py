"""
Services Layer

Scheduling engine and submission handling that:
- Accept domain inputs (entries, schedules, raw text)
- Return domain outputs (schedules, results, dicts)
- Do NOT depend on HTTP request/response objects
- Do NOT touch the database
"""
