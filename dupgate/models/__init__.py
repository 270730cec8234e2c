"""DupGate models package.

Defines the shared data contracts used across the gate pipeline and HTTP surface:

  - upload.py   — UploadEvent, FoundItem, UploadStatus, Decision
  - response.py — Response builder for the before-upload gate JSON contract
"""
