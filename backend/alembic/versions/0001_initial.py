from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    op.create_table(
        "league",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_table(
        "player",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("league_id", sa.String(), sa.ForeignKey("league.id"), nullable=False),
        sa.Column(
            "joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "uq_player_league_name_lower",
        "player",
        ["league_id", sa.text("lower(name)")],
        unique=True,
    )
    op.create_table(
        "player_stats",
        sa.Column("player_id", sa.String(), sa.ForeignKey("player.id"), primary_key=True),
        sa.Column("mode", sa.String(), primary_key=True),
        sa.Column("rating", sa.Integer(), nullable=False, server_default="1200"),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "stats_may_be_approximate",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
    )
    op.create_table(
        "match",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("league_id", sa.String(), sa.ForeignKey("league.id"), nullable=False),
        sa.Column("mode", sa.String(), nullable=False),
        sa.Column("score_winner", sa.Integer(), nullable=False),
        sa.Column("score_loser", sa.Integer(), nullable=False),
        sa.Column("rating_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_friendly", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "counts_toward_record", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("played_at", sa.DateTime(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("logged_by", sa.String(), nullable=True),
        sa.Column("pending_match_id", sa.String(), nullable=True),
    )
    op.create_index(
        "ix_match_league_replay_order", "match", ["league_id", "played_at", "sequence"]
    )
    op.create_table(
        "match_participant",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("match_id", sa.String(), sa.ForeignKey("match.id"), nullable=False),
        sa.Column("player_id", sa.String(), nullable=False),
        sa.Column("is_winner", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint(
            "match_id", "player_id", name="uq_match_participant_match_id_player_id"
        ),
    )
    op.create_index(
        "ix_match_participant_player_id", "match_participant", ["player_id"]
    )
    op.create_table(
        "rating_history",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("player_id", sa.String(), nullable=False),
        sa.Column("mode", sa.String(), nullable=False),
        sa.Column("match_id", sa.String(), sa.ForeignKey("match.id"), nullable=False),
        sa.Column("rating_after", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "match_id", "player_id", name="uq_rating_history_match_id_player_id"
        ),
    )
    op.create_index(
        "ix_rating_history_player_mode", "rating_history", ["player_id", "mode"]
    )
    op.create_table(
        "pending_match",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("league_id", sa.String(), sa.ForeignKey("league.id"), nullable=False),
        sa.Column("mode", sa.String(), nullable=False),
        sa.Column("winner_ids", JSON, nullable=False),
        sa.Column("loser_ids", JSON, nullable=False),
        sa.Column("score_winner", sa.Integer(), nullable=False),
        sa.Column("score_loser", sa.Integer(), nullable=False),
        sa.Column("is_friendly", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("logged_by", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("confirmations", JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("match_id", sa.String(), nullable=True),
    )
    op.create_index(
        "ix_pending_match_status_expires_at", "pending_match", ["status", "expires_at"]
    )
    op.create_table(
        "season",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("league_id", sa.String(), sa.ForeignKey("league.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("final_standings", JSON, nullable=False),
        sa.Column("match_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("champion_id", sa.String(), nullable=True),
        sa.UniqueConstraint("league_id", "number", name="uq_season_league_id_number"),
    )


def downgrade():
    op.drop_table("season")
    op.drop_index("ix_pending_match_status_expires_at", table_name="pending_match")
    op.drop_table("pending_match")
    op.drop_index("ix_rating_history_player_mode", table_name="rating_history")
    op.drop_table("rating_history")
    op.drop_index("ix_match_participant_player_id", table_name="match_participant")
    op.drop_table("match_participant")
    op.drop_index("ix_match_league_replay_order", table_name="match")
    op.drop_table("match")
    op.drop_table("player_stats")
    op.drop_index("uq_player_league_name_lower", table_name="player")
    op.drop_table("player")
    op.drop_table("league")
