#!/usr/bin/env python3
"""
Generate a JWT secret key and a starter .env for the Symptom Diary API.
Run this and copy the output to your .env file.
"""

import secrets

if __name__ == "__main__":
    print("=" * 60)
    print("Symptom Diary .env Generator")
    print("=" * 60)
    print("\nGenerating a secure random key...\n")

    print(f"JWT_SECRET_KEY={secrets.token_hex(32)}")
    print("DB_URI=sqlite:///symptom_diary.db")
    print("STORAGE_DIR=./storage")
    print("PUBLIC_BASE_URL=http://localhost:8000")

    print("\n" + "=" * 60)
    print("Copy the lines above to your .env file")
    print("=" * 60)
