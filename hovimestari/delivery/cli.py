def send_cli(message: str) -> bool:
    print("\n" + "=" * 50)
    print(message)
    print("=" * 50 + "\n")
    return True
