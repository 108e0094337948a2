"""
Lessons Learned Platform
Blueprint package: health probes and the MS Project upload API.
"""
