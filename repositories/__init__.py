"""
repositories/ - Data Access Layer
==================================
One repository per table group (reminders, bills, push subscriptions).
Repositories run the SQL and hand back domain model objects; services never
touch a cursor directly.
"""
