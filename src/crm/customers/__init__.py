"""Customer module -- retail partner records, contacts, tags, and saved searches.

Provides SQLAlchemy models, Pydantic schemas, CustomerRepository and
SavedSearchRepository for async CRUD, and the lead-list CSV importer.
"""
