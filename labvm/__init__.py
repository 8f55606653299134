"""Lab VM provisioning through multipass."""

__version__ = '0.1.0'
