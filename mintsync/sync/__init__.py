"""
Token sync engine.

Components are imported from their modules, e.g.
``from mintsync.sync.job import SyncTokensJob``.
"""
