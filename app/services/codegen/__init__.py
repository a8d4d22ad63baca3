"""Code generation -- turn a job's request into validated files on disk.

Sub-modules
-----------
- parser       -- lenient JSON extraction from raw model output
- validator    -- codegen result contract (file count, size, path safety)
- prompts      -- direct / cache-eligible prompt composition
- json_call    -- one JSON LLM call with a bounded corrective retry
- asset_policy -- website image references forced onto placeholders
- spec_stage   -- optional first call of the two-stage pipeline
- generator    -- the codegen stage itself (compose, call, enforce, write)
"""
