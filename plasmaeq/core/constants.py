"""
Physical constants for plasmaeq calculations.

Energies of atomic levels are carried in eV throughout the package, so the
Boltzmann constant is given in eV/K. Densities are in cm^-3 and mass
densities in g cm^-3.
"""

# ============================================================================
# Fundamental Constants
# ============================================================================

# Boltzmann constant
KB_EV = 8.617333262e-5  # eV/K

# Hydrogen atom mass
M_H_G = 1.6735575e-24  # g

# ============================================================================
# Plasma Physics Constants
# ============================================================================

# Saha equation pre-factor 2 * (2π m_e k_B / h^2)^(3/2) for T in eV:
# n_{z+1} * n_e / n_z = SAHA_CONST_CM3 * T^1.5 * (U_{z+1} / U_z) * exp(-χ/kT)
SAHA_CONST_CM3 = 6.042e21  # cm^-3

# ============================================================================
# Equilibrium-cycle Defaults
# ============================================================================

# Band within which a level counts as tracking its LTE population
LTE_DEP_FRAC = 2.0

# Minimum distance (in levels) between the ground state and a superlevel
LOWEST_SUPERLEVEL_THRESHOLD = 5

# Share of the latest flux estimate folded into the persistent estimate
FLUX_PERSIST_SCALE = 0.5

# Denominator of the open-interval uniform deviate used for sampling
MAXRAND = 2**52
