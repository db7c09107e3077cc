# veritas/policy.py

FACT_CHECKING_STANDARDS = """
VERITAS FACT-CHECKING STANDARDS (HARD RULES)

Allowed verdicts ONLY:
- True        (the evidence confirms the claim)
- False       (the evidence contradicts the claim)
- Unverified  (the evidence is irrelevant, silent, or insufficient)

Rules:
- Judge the claim as stated, not a charitable rewrite of it
- Prefer Unverified over guessing
- Reasoning is ONE sentence, in English, regardless of the source language
- Never describe missing evidence and then return True or False
"""

# Hosts whose content ranks well for claim-shaped queries but carries little authority.
LOW_TRUST_DOMAINS = [
    "reddit.com", "quora.com", "answers.com", "answers.yahoo.com",
    "stackexchange.com", "wikipedia.org", "wikia.com", "fandom.com",
    "wikihow.com", "medium.com", "substack.com", "blogspot.com",
    "wordpress.com", "tumblr.com", "facebook.com", "twitter.com", "x.com",
    "tiktok.com", "instagram.com", "pinterest.com", "youtube.com",
    "4chan.org", "brainly.com", "chegg.com", "coursehero.com",
]

# Journals, international bodies, research organisations, wire services, fact-checkers.
HIGH_TRUST_DOMAINS = [
    "nature.com", "science.org", "cell.com", "thelancet.com", "nejm.org",
    "bmj.com", "jamanetwork.com", "sciencedirect.com", "springer.com",
    "wiley.com", "cambridge.org", "oup.com", "arxiv.org", "plos.org",
    "who.int", "un.org", "oecd.org", "worldbank.org", "imf.org", "europa.eu",
    "pewresearch.org", "brookings.edu", "rand.org", "kff.org", "gallup.com",
    "ourworldindata.org", "statista.com", "usafacts.org",
    "factcheck.org", "politifact.com", "snopes.com", "fullfact.org",
    "reuters.com", "apnews.com", "bbc.com", "bbc.co.uk", "npr.org", "pbs.org",
    "britannica.com", "nasa.gov", "noaa.gov",
]

# Reasoning that describes missing evidence forces an Unverified verdict.
HEDGE_PHRASES = [
    "no evidence",
    "insufficient",
    "cannot verify",
    "can't verify",
    "cannot be verified",
    "could not be verified",
    "unable to verify",
    "not enough",
    "no information",
    "no relevant",
    "does not mention",
    "do not mention",
    "not mentioned",
    "unclear",
    "inconclusive",
    "no data",
    "not possible to determine",
    "cannot be determined",
    "cannot determine",
]

# Canonical manipulation taxonomy: (name, definition). Order is the report order.
MANIPULATION_TACTICS = [
    ("Appeal to Emotion", "Uses fear, anger, pity or outrage to persuade instead of evidence."),
    ("Appeal to Authority", "Leans on the status of a person or institution rather than the substance of their evidence."),
    ("Cherry-Picking", "Selects favourable data points while omitting contrary or contextual data."),
    ("False Dichotomy", "Presents two options as the only possibilities when others exist."),
    ("Loaded Language", "Uses emotionally charged or hyperbolic wording to frame an issue."),
    ("Bandwagon", "Argues something is true or good because many people believe or do it."),
    ("Strawman", "Misrepresents an opposing position to make it easier to attack."),
    ("Repetition", "Repeats slogans or claims so familiarity substitutes for support."),
]

TACTIC_NAMES = [name for name, _ in MANIPULATION_TACTICS]
