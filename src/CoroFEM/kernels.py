import taichi as ti

real = ti.f64


# math utils
@ti.func
def clamp_small(F, eps):
    G = F
    for i in ti.static(range(F.n)):
        for j in ti.static(range(F.m)):
            if ti.abs(G[i, j]) < eps:
                G[i, j] = 0.0
    return G


@ti.func
def ssvd(F):
    U, sig, V = ti.svd(F)
    if U.determinant() < 0:
        for i in ti.static(range(F.n)):
            U[i, F.n - 1] *= -1
        sig[F.n - 1, F.n - 1] = -sig[F.n - 1, F.n - 1]
    if V.determinant() < 0:
        for i in ti.static(range(F.n)):
            V[i, F.n - 1] *= -1
        sig[F.n - 1, F.n - 1] = -sig[F.n - 1, F.n - 1]
    return U, sig, V


@ti.func
def polar_decomposition(F):
    U, sig, V = ssvd(F)
    R = U @ V.transpose()
    S = V @ sig @ V.transpose()
    return S, R


@ti.func
def cofactor(F):
    # det(F) * F^-T without inverting F
    if ti.static(F.n == 2):
        return ti.Matrix([[F[1, 1], -F[1, 0]], [-F[0, 1], F[0, 0]]])
    else:
        return ti.Matrix([[F[1, 1] * F[2, 2] - F[1, 2] * F[2, 1], F[1, 2] * F[2, 0] - F[1, 0] * F[2, 2], F[1, 0] * F[2, 1] - F[1, 1] * F[2, 0]],
                          [F[0, 2] * F[2, 1] - F[0, 1] * F[2, 2], F[0, 0] * F[2, 2] - F[0, 2] * F[2, 0], F[0, 1] * F[2, 0] - F[0, 0] * F[2, 1]],
                          [F[0, 1] * F[1, 2] - F[0, 2] * F[1, 1], F[0, 2] * F[1, 0] - F[0, 0] * F[1, 2], F[0, 0] * F[1, 1] - F[0, 1] * F[1, 0]]])


@ti.kernel
def elastic_force_kernel(
    pos: ti.types.ndarray(),
    force: ti.types.ndarray(),
    elements: ti.types.ndarray(),
    dm_inv: ti.types.ndarray(),
    volume: ti.types.ndarray(),
    valid: ti.types.ndarray(),
    mu: real,
    la: real,
    eps: real,
    dim: ti.template(),
):
    """Scatter-add corotational nodal forces of every valid element into `force`."""
    for e in range(elements.shape[0]):
        if valid[e] != 0:
            last = elements[e, dim]
            Ds = ti.Matrix([[pos[elements[e, j], i] - pos[last, i] for j in ti.static(range(dim))]
                            for i in ti.static(range(dim))])
            Dinv = ti.Matrix([[dm_inv[e, i, j] for j in ti.static(range(dim))] for i in ti.static(range(dim))])
            F = clamp_small(Ds @ Dinv, eps)
            _, R = polar_decomposition(F)
            P = 2.0 * mu * (F - R) + la * (F.determinant() - 1.0) * cofactor(F)
            G = -volume[e] * P @ Dinv.transpose()
            # last vertex takes minus the sum so the element force sums to zero
            for j in ti.static(range(dim)):
                for i in ti.static(range(dim)):
                    force[elements[e, j], i] += G[i, j]
                    force[last, i] -= G[i, j]


@ti.kernel
def explicit_integrate_kernel(
    pos: ti.types.ndarray(),
    vel: ti.types.ndarray(),
    force: ti.types.ndarray(),
    mass: ti.types.ndarray(),
    fixed: ti.types.ndarray(),
    gravity: real,
    dt: real,
    dim: ti.template(),
):
    for p in range(pos.shape[0]):
        if fixed[p] == 0:
            inv_m = 1.0 / mass[p]
            for i in ti.static(range(dim)):
                acc = force[p, i] * inv_m
                if ti.static(i == 1):
                    acc += gravity
                vel[p, i] += acc * dt
                pos[p, i] += vel[p, i] * dt
