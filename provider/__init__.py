"""
provider — client-side integration with the Provider partner API.

  • decryption.py → AES-256-GCM decryption of profile PII fields
  • mtls.py       → mTLS-configured httpx client factory
  • gateway.py    → typed async gateway (tokens, profile, unlink, messages)
  • dispatcher.py → chunked, failure-isolated batch message sends
  • errors.py     → the closed error taxonomy shared by all of the above
"""
