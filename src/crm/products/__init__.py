"""Product catalog module -- ProductModel, schemas, and ProductRepository."""
