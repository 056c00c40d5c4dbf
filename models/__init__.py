"""Persistence layer: one process-wide DBStorage, configured by create_app()."""
from models.db_storage import DBStorage

storage = DBStorage()
