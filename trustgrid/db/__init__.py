"""
TrustGrid — Database Package
Re-exports for convenience.
"""
from trustgrid.db.neo4j import get_driver, get_session, init_schema, close
