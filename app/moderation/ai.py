# app/moderation/ai.py - Appels aux services d'IA (toxicité, résumés)
import logging
from typing import Optional

import requests
from fastapi.concurrency import run_in_threadpool

from app.config import settings
from app.moderation import profanity

logger = logging.getLogger(__name__)

TOXIC_LABELS = {"toxic", "severe_toxic", "obscene", "threat", "insult", "identity_hate"}
REQUEST_TIMEOUT = 10

SUMMARY_SYSTEM_PROMPT = "You are an AI that summarizes user comments."
SUMMARY_PROMPT = (
    "Summarize these comments in 2 to 3 sentences.\n"
    "- Identify the main topic.\n"
    "- Capture general opinions (positive, negative, mixed).\n\n"
    "Comments to analyze:\n\n"
)


def local_toxicity(text: str) -> dict:
    words = profanity.find_profanities(text)
    return {
        "toxic": bool(words),
        "score": 1.0 if words else 0.0,
        "toxic_words": words,
        "reason": "Langage inapproprié détecté" if words else None,
    }


def _query_classifier(text: str) -> list:
    response = requests.post(
        settings.TOXICITY_API_URL,
        headers={"Authorization": f"Bearer {settings.TOXICITY_API_KEY}"},
        json={"inputs": text},
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


async def check_toxicity(text: str) -> dict:
    """
    Analyse la toxicité d'un texte.

    Utilise le classifieur distant si une clé est configurée, sinon (ou en cas
    d'erreur) le filtre de grossièretés local. Le filtre local est toujours
    appliqué : un mot de la liste suffit à rendre le texte toxique.
    """
    if not text or not text.strip():
        return {"toxic": False, "score": 0.0, "toxic_words": [], "reason": None}

    local = local_toxicity(text)
    if local["toxic"] or not settings.TOXICITY_API_KEY:
        return local

    try:
        data = await run_in_threadpool(_query_classifier, text)
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Classifieur de toxicité indisponible, filtre local utilisé: {e}")
        return local

    # Format Hugging Face : [[{"label": ..., "score": ...}, ...]]
    labels = data[0] if data and isinstance(data[0], list) else data
    score = max(
        (float(item.get("score", 0)) for item in labels or [] if item.get("label", "").lower() in TOXIC_LABELS),
        default=0.0,
    )
    toxic = score >= settings.TOXICITY_THRESHOLD
    return {
        "toxic": toxic,
        "score": round(score, 4),
        "toxic_words": [],
        "reason": "Contenu jugé toxique par le classifieur" if toxic else None,
    }


def _query_completion(prompt: str) -> str:
    response = requests.post(
        settings.OPENAI_API_URL,
        headers={
            "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        },
        json={
            "model": settings.OPENAI_MODEL,
            "temperature": 0.5,
            "max_tokens": 150,
            "messages": [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        },
        timeout=REQUEST_TIMEOUT * 3,
    )
    response.raise_for_status()
    return response.json()["choices"][0]["message"]["content"].strip()


async def summarize(texts: list[str]) -> Optional[str]:
    """Résumé IA d'une liste de commentaires, None si indisponible"""
    if not settings.OPENAI_API_KEY or not texts:
        return None
    try:
        return await run_in_threadpool(_query_completion, SUMMARY_PROMPT + "\n".join(texts))
    except (requests.RequestException, KeyError, IndexError, ValueError) as e:
        logger.error(f"Échec de la génération du résumé IA: {e}")
        return None
