"""
Service layer.

``validator`` normalizes and checks card identifiers; ``card_service``
owns every read and write of the ``cards`` table.  Both front-ends go
through these modules and never touch the database directly.
"""
