"""Domain and database models for cardnote."""
