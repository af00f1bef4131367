"""
services/ - Business Logic Layer
================================
Scanning due reminders, advancing recurrences, delivering push
notifications and running the bill payment lifecycle.
Services talk to the database only through repositories.
"""
