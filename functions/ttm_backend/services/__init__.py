"""
Domain operations. Functions take their collaborators (database, storage,
queue, settings) as arguments and raise ttm_backend.errors exceptions.
"""
