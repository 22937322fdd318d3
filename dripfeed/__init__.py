"""dripfeed core package.

Modules:
- catalog: story catalog flat file (read-only)
- subscriptions: subscription flat file (lookup and in-place rewrite)
- source: remote chapter existence check
- engine: release schedule and chapter advancement
- feed: feed entries and RSS rendering
- web: FastAPI app and routing
- monitor: Watchdog-based validation of the data files
- config: INI parsing and config object
"""
