"""
GST Modules (``gst_modules``).

Orchestration over the pure engines: persistence, per-entity ledger
serialization and the service facades.  One sub-package per concern;
``rcm`` covers reverse charge and the input-tax-credit ledger.
"""
