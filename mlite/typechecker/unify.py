from typing import Optional

from mlite.typechecker.mlite_types import (
    FunctionType,
    TupleType,
    Type,
    TypeCon,
    TypeSubstitution,
    TypeVar,
)


class UnificationError(Exception):
    def __init__(self, left: Type, right: Type, reason: Optional[str] = None) -> None:
        self.left = left
        self.right = right
        self.reason = reason
        message = f"Cannot unify {left} and {right}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


def occurs_check(var: str, typ: Type) -> bool:
    """Check if a type variable occurs within a type (prevents infinite types)"""
    match typ:
        case TypeVar(name=name):
            return var == name
        case TypeCon(args=args):
            return any(occurs_check(var, arg) for arg in args)
        case FunctionType(param=param, result=result):
            return occurs_check(var, param) or occurs_check(var, result)
        case TupleType(element_types=element_types):
            return any(occurs_check(var, elem) for elem in element_types)
        case _:
            raise TypeError(f"Unknown type in occurs check: {type(typ)}")


def _bind(name: str, typ: Type) -> TypeSubstitution:
    if typ == TypeVar(name):
        return TypeSubstitution()
    if occurs_check(name, typ):
        raise UnificationError(
            TypeVar(name),
            typ,
            f"the type variable {TypeVar(name)} occurs inside {typ}",
        )
    return TypeSubstitution({name: typ})


def _unify_pairwise(lefts, rights) -> TypeSubstitution:
    subst = TypeSubstitution()
    for left, right in zip(lefts, rights):
        s = unify_one(subst.apply(left), subst.apply(right))
        subst = s.compose(subst)
    return subst


def unify_one(t1: Type, t2: Type) -> TypeSubstitution:
    """Unify two types and return the most general unifier"""

    if t1 == t2:
        return TypeSubstitution()

    match (t1, t2):
        case (TypeVar(name=name), _):
            return _bind(name, t2)
        case (_, TypeVar(name=name)):
            return _bind(name, t1)
        case (TypeCon(name=name1, args=args1), TypeCon(name=name2, args=args2)):
            if name1 != name2 or len(args1) != len(args2):
                raise UnificationError(t1, t2)
            return _unify_pairwise(args1, args2)
        case (
            FunctionType(param=param1, result=result1),
            FunctionType(param=param2, result=result2),
        ):
            s1 = unify_one(param1, param2)
            s2 = unify_one(s1.apply(result1), s1.apply(result2))
            return s2.compose(s1)
        case (
            TupleType(element_types=elem_types1),
            TupleType(element_types=elem_types2),
        ):
            if len(elem_types1) != len(elem_types2):
                raise UnificationError(
                    t1,
                    t2,
                    "tuples of different lengths",
                )
            return _unify_pairwise(elem_types1, elem_types2)
        case _:
            raise UnificationError(t1, t2)
