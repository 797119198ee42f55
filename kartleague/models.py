from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kartleague.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Season(Base):
    __tablename__ = "seasons"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    start_date: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    end_date: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    number_of_rounds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    rounds: Mapped[list["Round"]] = relationship(
        "Round", back_populates="season", cascade="all, delete-orphan"
    )
    drivers: Mapped[list["Driver"]] = relationship(
        "Driver", back_populates="season", cascade="all, delete-orphan"
    )
    teams: Mapped[list["Team"]] = relationship(
        "Team", back_populates="season", cascade="all, delete-orphan"
    )
    division_changes: Mapped[list["DivisionChange"]] = relationship(
        "DivisionChange", back_populates="season", cascade="all, delete-orphan"
    )


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    address: Mapped[str] = mapped_column(String(256), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    rounds: Mapped[list["Round"]] = relationship("Round", back_populates="venue")


class Round(Base):
    __tablename__ = "rounds"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False, index=True)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    location_id: Mapped[str | None] = mapped_column(
        ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Free-text fallbacks for rounds without a managed location.
    location: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    address: Mapped[str] = mapped_column(String(256), default="", nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), default="upcoming", nullable=False
    )  # upcoming, completed, cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    season: Mapped[Season] = relationship("Season", back_populates="rounds")
    venue: Mapped[Location | None] = relationship("Location", back_populates="rounds")
    results: Mapped[list["RaceResult"]] = relationship(
        "RaceResult", back_populates="round", cascade="all, delete-orphan"
    )
    points: Mapped[list["Points"]] = relationship(
        "Points", back_populates="round", cascade="all, delete-orphan"
    )
    check_ins: Mapped[list["CheckIn"]] = relationship(
        "CheckIn", back_populates="round", cascade="all, delete-orphan"
    )

    __table_args__ = (UniqueConstraint("season_id", "round_number", name="uq_round_number_per_season"),)

    @property
    def location_name(self) -> str:
        return self.venue.name if self.venue else self.location

    @property
    def location_address(self) -> str:
        return self.venue.address if self.venue and self.venue.address else self.address


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(256), default="", nullable=False)
    mobile_number: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    division: Mapped[str] = mapped_column(String(32), nullable=False)
    team_name: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), default="ACTIVE", nullable=False
    )  # ACTIVE, INACTIVE, BANNED
    aliases: Mapped[str] = mapped_column(Text, default="", nullable=False)  # comma separated
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    season: Mapped[Season] = relationship("Season", back_populates="drivers")
    results: Mapped[list["RaceResult"]] = relationship(
        "RaceResult", back_populates="driver", cascade="all, delete-orphan"
    )
    points: Mapped[list["Points"]] = relationship(
        "Points", back_populates="driver", cascade="all, delete-orphan"
    )
    check_ins: Mapped[list["CheckIn"]] = relationship(
        "CheckIn", back_populates="driver", cascade="all, delete-orphan"
    )
    division_changes: Mapped[list["DivisionChange"]] = relationship(
        "DivisionChange", back_populates="driver", cascade="all, delete-orphan"
    )

    @property
    def alias_list(self) -> list[str]:
        return [a.strip() for a in self.aliases.split(",") if a.strip()]


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    division: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    season: Mapped[Season] = relationship("Season", back_populates="teams")

    __table_args__ = (UniqueConstraint("season_id", "name", name="uq_team_name_per_season"),)


class RaceResult(Base):
    __tablename__ = "race_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    round_id: Mapped[str] = mapped_column(ForeignKey("rounds.id"), nullable=False, index=True)
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id"), nullable=False, index=True)
    driver_alias: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    division: Mapped[str] = mapped_column(String(32), default="", nullable=False)  # driver's home division
    race_division: Mapped[str] = mapped_column(String(32), nullable=False)  # may be "Open"
    kart_number: Mapped[str] = mapped_column(String(16), default="", nullable=False)
    race_type: Mapped[str] = mapped_column(
        String(16), default="qualification", nullable=False
    )  # qualification, heat, final
    final_type: Mapped[str] = mapped_column(String(4), default="", nullable=False)  # A / B / C ...
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overall_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fastest_lap: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    round: Mapped[Round] = relationship("Round", back_populates="results")
    driver: Mapped[Driver] = relationship("Driver", back_populates="results")

    __table_args__ = (
        UniqueConstraint(
            "round_id",
            "driver_id",
            "race_type",
            "final_type",
            name="uq_race_result",
        ),
    )


class Points(Base):
    __tablename__ = "points"

    id: Mapped[str] = mapped_column(String(256), primary_key=True)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False, index=True)
    round_id: Mapped[str] = mapped_column(ForeignKey("rounds.id"), nullable=False, index=True)
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id"), nullable=False, index=True)
    division: Mapped[str] = mapped_column(String(32), nullable=False)  # frozen at save time
    race_division: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    race_type: Mapped[str] = mapped_column(String(16), default="qualification", nullable=False)
    final_type: Mapped[str] = mapped_column(String(4), default="", nullable=False)
    overall_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points: Mapped[float] = mapped_column(Float, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    round: Mapped[Round] = relationship("Round", back_populates="points")
    driver: Mapped[Driver] = relationship("Driver", back_populates="points")

    __table_args__ = (
        UniqueConstraint(
            "round_id",
            "driver_id",
            "race_type",
            "final_type",
            name="uq_points",
        ),
    )


class CheckIn(Base):
    __tablename__ = "check_ins"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    season_id: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    round_id: Mapped[str] = mapped_column(ForeignKey("rounds.id"), nullable=False, index=True)
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id"), nullable=False, index=True)
    checked_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    round: Mapped[Round] = relationship("Round", back_populates="check_ins")
    driver: Mapped[Driver] = relationship("Driver", back_populates="check_ins")

    __table_args__ = (UniqueConstraint("round_id", "driver_id", name="uq_check_in"),)


class DivisionChange(Base):
    __tablename__ = "division_changes"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    season_id: Mapped[str] = mapped_column(ForeignKey("seasons.id"), nullable=False, index=True)
    # Not a foreign key: pre-season changes point at the synthetic "pre-season-<season>" round.
    round_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id"), nullable=False, index=True)
    driver_name: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    from_division: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_division: Mapped[str | None] = mapped_column(String(32), nullable=True)
    division_start: Mapped[str | None] = mapped_column(String(32), nullable=True)
    change_type: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # promotion, demotion, division_start, mid_season_join
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    season: Mapped[Season] = relationship("Season", back_populates="division_changes")
    driver: Mapped[Driver] = relationship("Driver", back_populates="division_changes")

    __table_args__ = (UniqueConstraint("driver_id", "round_id", name="uq_division_change"),)
