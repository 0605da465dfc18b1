def split_message(text: str, max_len: int) -> list[str]:
    """Split a message at line boundaries; overlong lines are hard-wrapped."""
    parts = []
    current = ""
    for line in text.split("\n"):
        while len(line) > max_len:
            if current.strip():
                parts.append(current.strip())
                current = ""
            parts.append(line[:max_len])
            line = line[max_len:]
        if len(current) + len(line) + 1 > max_len:
            parts.append(current.strip())
            current = line + "\n"
        else:
            current += line + "\n"
    if current.strip():
        parts.append(current.strip())
    return [p for p in parts if p]
