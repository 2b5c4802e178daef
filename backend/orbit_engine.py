import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import numpy as np

# Julian Date of the Unix epoch (1970-01-01T00:00:00Z).
UNIX_EPOCH_JD = 2440587.5
# J2000.0 = 2000 Jan 1.5 TT.
J2000_JD = 2451545.0
DAYS_PER_CENTURY = 36525.0
SECONDS_PER_DAY = 86400.0

J2000_EPOCH = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@dataclass(frozen=True)
class OrbitalElements:
    a: float  # Semi-major axis (AU)
    a_rate: float
    e: float  # Eccentricity
    e_rate: float
    i: float  # Inclination (degrees)
    i_rate: float
    L: float  # Mean longitude (degrees)
    L_rate: float
    varpi: float  # Longitude of perihelion (degrees)
    varpi_rate: float
    Omega: float  # Longitude of ascending node (degrees)
    Omega_rate: float

    def at(self, T: float) -> "OrbitalElements":
        """Elements linearly extrapolated to T Julian centuries past J2000."""
        return replace(
            self,
            a=self.a + self.a_rate * T,
            e=self.e + self.e_rate * T,
            i=self.i + self.i_rate * T,
            L=self.L + self.L_rate * T,
            varpi=self.varpi + self.varpi_rate * T,
            Omega=self.Omega + self.Omega_rate * T,
        )

    @property
    def period_days(self) -> float:
        return DAYS_PER_CENTURY * 360.0 / self.L_rate


@dataclass(frozen=True)
class EphemerisResult:
    angle: float  # Heliocentric ecliptic longitude (radians, (-pi, pi])
    distance: float  # Heliocentric distance projected on the ecliptic (AU)


DEFAULT_RESULT = EphemerisResult(angle=0.0, distance=1.0)


def _as_utc(date: datetime) -> datetime:
    if date.tzinfo is None:
        return date.replace(tzinfo=timezone.utc)
    return date


def date_to_jd(date: datetime) -> float:
    return _as_utc(date).timestamp() / SECONDS_PER_DAY + UNIX_EPOCH_JD


def centuries_since_j2000(date: datetime) -> float:
    """Julian centuries since J2000.0 (negative before 2000-01-01 12:00)."""
    return (date_to_jd(date) - J2000_JD) / DAYS_PER_CENTURY


def normalize_deg(deg: float) -> float:
    """Wrap angle to (-180, 180] degrees."""
    d = math.fmod(deg, 360.0)
    if d > 180.0:
        d -= 360.0
    if d <= -180.0:
        d += 360.0
    return d


def solve_kepler_equation(M: float, e: float, tol: float = 1e-7, max_iter: int = 20) -> float:
    """
    Solve M = E - e* sin(E) for E, everything in degrees.

    e* is the eccentricity scaled by 180/pi. Newton-Raphson from
    E0 = M + e* sin(M); returns the last iterate if the cap is hit first.
    """
    e_star = np.degrees(e)
    E = M + e_star * np.sin(np.radians(M))

    for _ in range(max_iter):
        dM = M - (E - e_star * np.sin(np.radians(E)))
        dE = dM / (1 - e * np.cos(np.radians(E)))
        E += dE
        if abs(dE) < tol:
            break

    return float(E)


class OrbitEngine:
    def __init__(self, kepler_tol: float = 1e-7, kepler_max_iter: int = 20):
        self.kepler_tol = kepler_tol
        self.kepler_max_iter = kepler_max_iter

        # JPL "Approximate Positions of the Planets", Table 1 (1800 AD - 2050 AD).
        # Values at J2000 followed by their rate per Julian century.
        self.planets: Dict[str, OrbitalElements] = {
            'mercury': OrbitalElements(
                a=0.38709927, a_rate=0.00000037,
                e=0.20563593, e_rate=0.00001906,
                i=7.00497902, i_rate=-0.00594749,
                L=252.25032350, L_rate=149472.67411175,
                varpi=77.45779628, varpi_rate=0.16047689,
                Omega=48.33076593, Omega_rate=-0.12534081,
            ),
            'venus': OrbitalElements(
                a=0.72333566, a_rate=0.00000390,
                e=0.00677672, e_rate=-0.00004107,
                i=3.39467605, i_rate=-0.00078890,
                L=181.97909950, L_rate=58517.81538729,
                varpi=131.60246718, varpi_rate=0.00268329,
                Omega=76.67984255, Omega_rate=-0.27769418,
            ),
            'earth': OrbitalElements(
                a=1.00000261, a_rate=0.00000562,
                e=0.01671123, e_rate=-0.00004392,
                i=-0.00001531, i_rate=-0.01294668,
                L=100.46457166, L_rate=35999.37244981,
                varpi=102.93768193, varpi_rate=0.32327364,
                Omega=0.0, Omega_rate=0.0,
            ),
            'mars': OrbitalElements(
                a=1.52371034, a_rate=0.00001847,
                e=0.09339410, e_rate=0.00007882,
                i=1.84969142, i_rate=-0.00813131,
                L=-4.55343205, L_rate=19140.30268499,
                varpi=-23.94362959, varpi_rate=0.44441088,
                Omega=49.55953891, Omega_rate=-0.29257343,
            ),
            'jupiter': OrbitalElements(
                a=5.20288700, a_rate=-0.00011607,
                e=0.04838624, e_rate=-0.00013253,
                i=1.30439695, i_rate=-0.00183714,
                L=34.39644051, L_rate=3034.74612775,
                varpi=14.72847983, varpi_rate=0.21252668,
                Omega=100.47390909, Omega_rate=0.20469106,
            ),
            'saturn': OrbitalElements(
                a=9.53667594, a_rate=-0.00125060,
                e=0.05386179, e_rate=-0.00050991,
                i=2.48599187, i_rate=0.00193609,
                L=49.95424423, L_rate=1222.49362201,
                varpi=92.59887831, varpi_rate=-0.41897216,
                Omega=113.66242448, Omega_rate=-0.28867794,
            ),
            'uranus': OrbitalElements(
                a=19.18916464, a_rate=-0.00196176,
                e=0.04725744, e_rate=-0.00004397,
                i=0.77263783, i_rate=-0.00242939,
                L=313.23810451, L_rate=428.48202785,
                varpi=170.95427630, varpi_rate=0.40805281,
                Omega=74.01692503, Omega_rate=0.04240589,
            ),
            'neptune': OrbitalElements(
                a=30.06992276, a_rate=0.00026291,
                e=0.00859048, e_rate=0.00005105,
                i=1.77004347, i_rate=0.00035372,
                L=-55.12002969, L_rate=218.45945325,
                varpi=44.96476227, varpi_rate=-0.32241464,
                Omega=131.78422574, Omega_rate=-0.00508664,
            ),
            # Pluto is not part of Table 1; a fixed element set is good enough to draw it.
            'pluto': OrbitalElements(
                a=39.48211675, a_rate=-0.00031596,
                e=0.24882730, e_rate=0.00005170,
                i=17.14001206, i_rate=0.00004818,
                L=238.92903833, L_rate=145.20780515,
                varpi=224.06891629, varpi_rate=-0.04062942,
                Omega=110.30393684, Omega_rate=-0.01183482,
            ),
        }

    @staticmethod
    def _wrap_to_pi(angle_rad: float) -> float:
        """Wrap angle to (-pi, pi]."""
        wrapped = (angle_rad + math.pi) % (2 * math.pi) - math.pi
        return wrapped if wrapped != -math.pi else math.pi

    def elements_at(self, planet: str, date: datetime) -> Optional[OrbitalElements]:
        elem = self.planets.get(planet)
        if elem is None:
            return None
        return elem.at(centuries_since_j2000(date))

    def _orbital_plane_position(self, elem: OrbitalElements) -> Tuple[float, float]:
        M = normalize_deg(elem.L - elem.varpi)
        E = solve_kepler_equation(M, elem.e, tol=self.kepler_tol, max_iter=self.kepler_max_iter)
        E_rad = np.radians(E)

        x_orb = elem.a * (np.cos(E_rad) - elem.e)
        y_orb = elem.a * np.sqrt(1 - elem.e * elem.e) * np.sin(E_rad)
        return x_orb, y_orb

    def get_planet_position(self, planet: str, date: datetime) -> Tuple[float, float, float]:
        """Heliocentric ecliptic J2000 coordinates (AU)."""
        elem = self.elements_at(planet, date)
        if elem is None:
            return (1.0, 0.0, 0.0)

        x_orb, y_orb = self._orbital_plane_position(elem)

        omega_rad = np.radians(elem.varpi - elem.Omega)  # argument of perihelion
        Omega_rad = np.radians(elem.Omega)
        i_rad = np.radians(elem.i)

        x = x_orb * (np.cos(omega_rad) * np.cos(Omega_rad) - np.sin(omega_rad) * np.sin(Omega_rad) * np.cos(i_rad)) - \
            y_orb * (np.sin(omega_rad) * np.cos(Omega_rad) + np.cos(omega_rad) * np.sin(Omega_rad) * np.cos(i_rad))

        y = x_orb * (np.cos(omega_rad) * np.sin(Omega_rad) + np.sin(omega_rad) * np.cos(Omega_rad) * np.cos(i_rad)) - \
            y_orb * (np.sin(omega_rad) * np.sin(Omega_rad) - np.cos(omega_rad) * np.cos(Omega_rad) * np.cos(i_rad))

        z = x_orb * (np.sin(omega_rad) * np.sin(i_rad)) + y_orb * (np.cos(omega_rad) * np.sin(i_rad))

        return (float(x), float(y), float(z))

    def position_of(self, planet: str, date: datetime) -> EphemerisResult:
        """
        Heliocentric longitude and ecliptic distance of a body at a date.

        The angle is counter-clockwise seen from ecliptic north. Bodies without
        orbital elements get DEFAULT_RESULT.
        """
        if planet not in self.planets:
            return DEFAULT_RESULT

        x, y, _z = self.get_planet_position(planet, date)
        return EphemerisResult(
            angle=self._wrap_to_pi(math.atan2(y, x)),
            distance=math.hypot(x, y),
        )

    def all_positions(self, date: datetime) -> Dict[str, EphemerisResult]:
        return {planet: self.position_of(planet, date) for planet in self.planets}

    def generate_orbit_points(
        self,
        planet: str,
        num_points: int = 360,
        date: Optional[datetime] = None,
    ) -> List[Tuple[float, float, float]]:
        if planet not in self.planets:
            raise ValueError(f"Unknown planet: {planet}")

        start = J2000_EPOCH if date is None else _as_utc(date)
        period_days = self.planets[planet].period_days
        points = []
        for i in range(num_points):
            t = start.timestamp() + (i / num_points) * period_days * SECONDS_PER_DAY
            points.append(self.get_planet_position(planet, datetime.fromtimestamp(t, tz=timezone.utc)))
        return points

    def get_planet_info(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {
                'a': elem.a,
                'e': elem.e,
                'i': elem.i,
                'L': elem.L,
                'varpi': elem.varpi,
                'Omega': elem.Omega,
                'period': elem.period_days,
            }
            for name, elem in self.planets.items()
        }
