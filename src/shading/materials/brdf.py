"""Cook-Torrance microfacet BRDF for direct point lighting.

The specular lobe combines three terms:

    f_spec = D * G * F / (4 (n.v)(n.l) + eps)

    D: GGX / Trowbridge-Reitz normal distribution, alpha = roughness^2
        D = a2 / (pi * ((n.h)^2 (a2 - 1) + 1)^2),  a2 = alpha^2
    G: Smith shadowing-masking with the Schlick-GGX single term,
        k = (roughness + 1)^2 / 8   (direct lighting remapping)
        G1(x) = x / (x (1 - k) + k)
    F: Schlick Fresnel, f0 = mix(0.04, albedo, metallic)
        F = f0 + (1 - f0) (1 - h.v)^5

The diffuse lobe is Lambertian, weighted for energy conservation:

    kD = (1 - F)(1 - metallic),  f_diff = kD * albedo / pi

and the outgoing radiance for one light is (f_diff + f_spec) * color * (n.l).
All dot products are clamped to [0, 1], so light or view directions below
the surface contribute nothing.

No input clamping is performed on roughness or metallic; they are validated
when materials are authored. In Taichi debug mode, asserts check the ranges.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.shading.materials.brdf import evaluate_brdf
    >>> # Use within a Taichi kernel:
    >>> # radiance = evaluate_brdf(n, l, v, albedo, roughness, metallic, light_color)
"""

import taichi as ti
import taichi.math as tm

from src.shading.core.vecmath import clamped_dot

vec3 = tm.vec3

# Base reflectance of dielectrics at normal incidence
DIELECTRIC_F0 = 0.04

# Keeps the specular denominator finite when n.v or n.l reaches zero
SPECULAR_EPSILON = 1e-4


@ti.func
def base_reflectance(albedo: vec3, metallic: ti.f32) -> vec3:
    """Reflectance at normal incidence: 0.04 for dielectrics, albedo for metals."""
    return tm.mix(vec3(DIELECTRIC_F0), albedo, metallic)


@ti.func
def fresnel_schlick(f0: vec3, h_dot_v: ti.f32) -> vec3:
    """Schlick's Fresnel approximation.

    Args:
        f0: Reflectance at normal incidence.
        h_dot_v: Cosine between half vector and view direction.

    Returns:
        f0 at h.v = 1, rising to 1 at grazing angles (h.v = 0).
    """
    # Clamped before the power so a negative base can never produce NaN
    grazing = tm.clamp(1.0 - h_dot_v, 0.0, 1.0)
    return f0 + (1.0 - f0) * (grazing**5)


@ti.func
def distribution_ggx(n_dot_h: ti.f32, roughness: ti.f32) -> ti.f32:
    """GGX / Trowbridge-Reitz normal distribution function.

    Args:
        n_dot_h: Cosine between normal and half vector, in [0, 1].
        roughness: Perceptual roughness in (0, 1].

    Returns:
        The microfacet density. Peaks at n.h = 1 and approaches a delta
        function as roughness goes to 0.
    """
    assert roughness > 0.0 and roughness <= 1.0, "roughness must be in (0, 1]"
    alpha = roughness * roughness
    alpha2 = alpha * alpha
    denom = n_dot_h * n_dot_h * (alpha2 - 1.0) + 1.0
    return alpha2 / (tm.pi * denom * denom)


@ti.func
def geometry_schlick_ggx(n_dot_x: ti.f32, roughness: ti.f32) -> ti.f32:
    """Schlick-GGX single-direction geometry term (direct lighting k)."""
    r = roughness + 1.0
    k = (r * r) / 8.0
    return n_dot_x / (n_dot_x * (1.0 - k) + k)


@ti.func
def geometry_smith(n_dot_v: ti.f32, n_dot_l: ti.f32, roughness: ti.f32) -> ti.f32:
    """Smith shadowing-masking: product of the view and light terms."""
    return geometry_schlick_ggx(n_dot_v, roughness) * geometry_schlick_ggx(n_dot_l, roughness)


@ti.func
def evaluate_specular(
    normal: vec3,
    light_dir: vec3,
    view_dir: vec3,
    f0: vec3,
    roughness: ti.f32,
):
    """Evaluate the Cook-Torrance specular lobe.

    Returns:
        A tuple (specular, fresnel) where specular is D*G*F over the
        normalization denominator and fresnel is F, needed for kD.
    """
    half = tm.normalize(view_dir + light_dir)
    n_dot_l = clamped_dot(normal, light_dir)
    n_dot_v = clamped_dot(normal, view_dir)
    n_dot_h = clamped_dot(normal, half)
    h_dot_v = clamped_dot(half, view_dir)

    d = distribution_ggx(n_dot_h, roughness)
    g = geometry_smith(n_dot_v, n_dot_l, roughness)
    f = fresnel_schlick(f0, h_dot_v)

    specular = (d * g * f) / (4.0 * n_dot_v * n_dot_l + SPECULAR_EPSILON)
    return specular, f


@ti.func
def diffuse_weight(fresnel: vec3, metallic: ti.f32) -> vec3:
    """Energy-conserving diffuse weight kD = (1 - F)(1 - metallic)."""
    return (1.0 - fresnel) * (1.0 - metallic)


@ti.func
def evaluate_brdf(
    normal: vec3,
    light_dir: vec3,
    view_dir: vec3,
    albedo: vec3,
    roughness: ti.f32,
    metallic: ti.f32,
    light_color: vec3,
) -> vec3:
    """Outgoing radiance from one light through the Cook-Torrance BRDF.

    Args:
        normal: Shading normal (normalized).
        light_dir: Direction toward the light (normalized).
        view_dir: Direction toward the camera (normalized).
        albedo: Linear base color.
        roughness: Perceptual roughness in (0, 1].
        metallic: Metalness in [0, 1].
        light_color: Linear light color.

    Returns:
        (kD * albedo / pi + specular) * light_color * n.l, before attenuation.
    """
    assert metallic >= 0.0 and metallic <= 1.0, "metallic must be in [0, 1]"
    f0 = base_reflectance(albedo, metallic)
    specular, fresnel = evaluate_specular(normal, light_dir, view_dir, f0, roughness)
    k_d = diffuse_weight(fresnel, metallic)
    n_dot_l = clamped_dot(normal, light_dir)
    return (k_d * albedo / tm.pi + specular) * light_color * n_dot_l
