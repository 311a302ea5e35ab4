from __future__ import annotations

import argparse

from line_intake.phone import PhoneVerdict, evaluate, normalize_digits


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Show how the intake bot reads a phone number out of a message."
    )
    parser.add_argument("text", type=str)
    args = parser.parse_args()

    result = evaluate(args.text)

    print(f"verdict: {result.verdict.value}")
    if result.number is not None:
        print(f"number:  {result.number}")
    if result.verdict is PhoneVerdict.NO_MATCH and normalize_digits(args.text) != args.text:
        print(f"half-width text: {normalize_digits(args.text)}")


if __name__ == "__main__":
    main()
