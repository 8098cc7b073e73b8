"""mirrorsync — keep a local directory mirrored onto an SFTP server"""
__version__ = "0.1.0"
