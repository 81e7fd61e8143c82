"""Navigator Keychain Meta information.
   Navigator Keychain is a password-protected, tamper-evident store of
   domain credentials.
"""
__title__ = 'navigator_keychain'
__description__ = (
   'Navigator Keychain is a password-protected, tamper-evident store '
   'of domain credentials.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-keychain'
