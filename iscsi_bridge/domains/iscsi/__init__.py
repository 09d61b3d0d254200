"""
iSCSI domain: initiator and node management proxied to the storage service.
"""
