"""Calendar sync between Outlook and Zoho CRM.

Provides the pure field remaps between the two vendors' record shapes
(field_mapping), the request/response models (schemas), and SyncEngine
(engine), which runs one fetch -> remap -> push pass per call.
"""
