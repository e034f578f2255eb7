"""kc Meta information.
   kc keeps namespaced secrets in an encrypted, append-only event log
   that survives being copied and merged by file-sync tools.
"""
__title__ = 'kc'
__description__ = (
   'Encrypted secret store backed by an append-only event log '
   'with sync-conflict reconciliation.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/kc'
