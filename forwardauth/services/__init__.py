"""Services that back the gateway: token signing, storage, and credentials."""
