"""
banca_batch -- background processing for the banking core.

Provides ProgramacionScheduler, the in-process polling loop that drives
matured scheduled transactions through the same engine operations the
request path uses.

Architecture:
    banca_batch/ is a top-level package.  Nothing in banca_kernel or
    banca_config imports from banca_batch.
"""
