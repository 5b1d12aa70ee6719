"""Services package: document store and identity provider adapters."""
