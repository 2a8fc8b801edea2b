"""Deal ledger module -- data model, schemas, repository, and mutation service.

A deal pairs a sale to a customer with the purchase that covers it. Provides
the SQLAlchemy DealModel, Pydantic schemas (DealCreate/Update/Read/Filter),
DealRepository for async CRUD, and DealService which announces every mutation
on the in-process event bus.
"""
