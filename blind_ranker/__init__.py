"""
Blind Ranker - Pairwise Elo ranking for generated and normal images

Builds quality rankings through:
1. One-time star rating to seed each image's Elo rating
2. Informative pair selection (few matches, close ratings, mixed LoRAs)
3. Elo updates for images and their LoRA groups
4. Statistical binning of final ratings into aesthetic tags
"""

__version__ = "0.1.0"

from .binning import DEFAULT_BIN_TAGS, PONY_TAGS, STRATEGY_NAMES
