"""
user_service package

Backend of the user microservice:

- FastAPI application (`main.py`) and routes (`routes/users.py`)
- SQLAlchemy models and database integration (`models.py`, `db.py`)
- Role-aware paginated user listing (`listing.py`)
- Permission service RPC client (`permission_client.py`)
- Super admin bootstrap (`bootstrap.py`)
"""
