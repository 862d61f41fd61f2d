#!/usr/bin/env python3
"""
Diagnose Apple Wallet Pass Signature Issues

Runs the pass verifier over a .pkpass file and prints what the Wallet
runtime would object to.

Usage: python scripts/diagnose_signature.py <path-to.pkpass>
"""
import sys
import os

from cardpass.services.pass_verification import verify_pkpass


def analyze_pkpass(pkpass_path: str) -> bool:
    """Print a diagnostic report for a pkpass file. Returns True if valid."""
    print("🔍 Apple Wallet Pass Signature Diagnostic")
    print("=" * 60)
    print()

    with open(pkpass_path, 'rb') as f:
        pkpass_bytes = f.read()

    print(f"📦 pkpass file: {pkpass_path}")
    print(f"   Size: {len(pkpass_bytes)} bytes")
    print()

    report = verify_pkpass(pkpass_bytes)

    print(f"📋 Files in pkpass ({len(report.filenames)}):")
    for name in sorted(report.filenames):
        print(f"   {name}")
    print()

    if report.manifest:
        print(f"📄 manifest.json entries: {len(report.manifest)}")
        for name, digest in sorted(report.manifest.items()):
            print(f"   {name}: {digest}")
        print()

    if report.signature:
        info = report.signature
        print("🔐 Signature:")
        print(f"   Detached: {info.detached}")
        print(f"   Digest: {info.digest_algorithm.name}")
        print(f"   Signing time: {info.signing_time}")
        print(f"   Certificates ({len(info.certificates)}):")
        for cert in info.certificates:
            print(f"      {cert.subject.rfc4514_string()}")
        print()

    print("=" * 60)
    if report.ok:
        print("✅ Pass bundle is valid")
    else:
        print(f"❌ {len(report.errors)} problem(s) found:")
        for error in report.errors:
            print(f"   - {error}")
    return report.ok


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts/diagnose_signature.py <path-to.pkpass>")
        sys.exit(1)

    pkpass_path = sys.argv[1]
    if not os.path.exists(pkpass_path):
        print(f"❌ File not found: {pkpass_path}")
        sys.exit(1)

    sys.exit(0 if analyze_pkpass(pkpass_path) else 2)
