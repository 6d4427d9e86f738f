SAMPLE_COMMENTS = (
    "The workshop was excellent and the speakers were very knowledgeable.",
    "Great session! I learned a lot about the new reporting tools.",
    "The room was too cold and the audio kept cutting out.",
    "Lunch was fine, nothing special.",
    "I wish the hands-on part had been longer; it felt rushed.",
    "Registration was confusing and the signage was poor.",
    "Loved the networking break, met some really helpful people.",
    "Slides were hard to read from the back of the room.",
    "Overall a useful day, I would attend again next year.",
    "The Q&A ran late and we missed the last train.",
)


def sample_text() -> str:
    return "\n".join(SAMPLE_COMMENTS)
