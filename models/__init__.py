"""
models/ - Domain Layer
======================
Plain dataclasses describing reminders, bills and push subscriptions.
No database or network code lives here.
"""
