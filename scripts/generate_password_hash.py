#!/usr/bin/env python3
"""
Password Hash Generator for Notebook Administrators
===================================================

Generates bcrypt password hashes for use in config/users.yaml:

    credentials:
      usernames:
        admin:
          password: <hash>

Usage:
    python scripts/generate_password_hash.py

    # Or with password as argument (less secure - visible in shell history)
    python scripts/generate_password_hash.py "mypassword"
"""

import getpass
import sys

from notebook.auth import hash_password


def main():
    print("=" * 50)
    print("Notebook Password Hash Generator")
    print("=" * 50)
    print()

    if len(sys.argv) > 1:
        password = sys.argv[1]
        print("Using password from command line argument")
        print("(Note: This is visible in shell history)")
    else:
        password = getpass.getpass("Enter password to hash: ")
        confirm = getpass.getpass("Confirm password: ")

        if password != confirm:
            print("\nError: Passwords don't match!")
            sys.exit(1)

    if len(password) < 6:
        print("\nWarning: Password is very short (< 6 characters)")
        response = input("Continue anyway? [y/N]: ")
        if response.lower() != "y":
            sys.exit(1)

    print()
    print("Generated hash:")
    print("-" * 50)
    print(hash_password(password))
    print("-" * 50)
    print()
    print("Copy this hash into config/users.yaml under the")
    print("administrator's 'password' field.")


if __name__ == "__main__":
    main()
