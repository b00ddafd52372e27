"""
Documents app: uploaded files, their metadata and the document/chunk store.
"""
