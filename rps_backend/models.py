from tortoise import fields
from tortoise.models import Model

from .constants import GAME_ID_LENGTH, GameStatus


class Game(Model):
    """Durable record of an online room stored in SQLite."""

    game_id = fields.CharField(pk=True, max_length=GAME_ID_LENGTH)
    player1_ip = fields.CharField(max_length=64, null=True)
    player2_ip = fields.CharField(max_length=64, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    status = fields.CharEnumField(GameStatus, max_length=16, default=GameStatus.WAITING)

    class Meta:
        table = "games"
