"""Job sub-package -- job records, lifecycle helpers and packaging.

Sub-modules:
    models           -- Job, CodegenResult, ImprovedSpec (pydantic)
    job_manager      -- ids, directories, per-job log, stage timing, status
    workspace        -- sandboxed path rules and resolution
    artifact_writer  -- workspace → output copy, zip archive
"""
